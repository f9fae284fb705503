"""Charforge data models.

Re-exports the catalog, requirement, rule and validation models so callers
can import from ``charforge.core.models`` directly.
"""

from .catalog import (
    Catalog,
    EntityDefinition,
    EntityKind,
    ENTITY_KINDS,
    DEFAULT_CATALOG,
)
from .requirements import (
    Alternative,
    Choose,
    Comparison,
    ComparisonOp,
    Requirement,
    RequirementGroup,
)
from .rules import (
    AllocationCategory,
    AllocationSpec,
    ChoiceInstruction,
    DerivationRule,
    RuleOp,
    SignalInfo,
    SignalKind,
)
from .validation import (
    Severity,
    ValidationIssue,
    ValidationResult,
    ValidationError,
    ValidationWarning,
)

__all__ = [
    # Catalog
    "Catalog",
    "EntityDefinition",
    "EntityKind",
    "ENTITY_KINDS",
    "DEFAULT_CATALOG",
    # Requirements
    "Alternative",
    "Choose",
    "Comparison",
    "ComparisonOp",
    "Requirement",
    "RequirementGroup",
    # Rules
    "AllocationCategory",
    "AllocationSpec",
    "ChoiceInstruction",
    "DerivationRule",
    "RuleOp",
    "SignalInfo",
    "SignalKind",
    # Validation
    "Severity",
    "ValidationIssue",
    "ValidationResult",
    "ValidationError",
    "ValidationWarning",
]
