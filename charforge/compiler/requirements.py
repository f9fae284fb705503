"""Compile requirement expressions into single-source derivation rules.

For a signal ``S`` triggered by attribute ``T``:

    S.g.i  unmet conjuncts of alternative i in group g
           T '=' <positive conjunct count>, then per conjunct
           path '+' -1 when a positive conjunct holds, or
           path '+' +1 when a conjunct that holds for unset values fails
    S.g    T '=' 1, then S.g.i 'v' 0 once any alternative is fully met
    S      sum of S.g, i.e. the number of unsatisfied groups

Each ``Choose`` over a literal list gets a helper that counts its picked
members; ``Choose ... any`` reads the category aggregate directly.
"""

from typing import TYPE_CHECKING

from ..core.models import Choose, Comparison, Requirement

if TYPE_CHECKING:
    from .context import EntityContext


def _conjunct_source(
    ctx: "EntityContext", helper: str, conjunct: Comparison | Choose
) -> tuple[str, str]:
    """Source attribute and test expression (over ``source``) for a conjunct."""
    if isinstance(conjunct, Comparison):
        return conjunct.path, conjunct.expression()
    if conjunct.domain is None:
        return conjunct.aggregate, f"num(source) >= {conjunct.count}"
    for path in conjunct.domain:
        ctx.rule(helper, path, "+=", "1 if num(source) > 0 else None")
    return helper, f"num(source) >= {conjunct.count}"


def compile_requirement(
    ctx: "EntityContext",
    name: str,
    requirement: Requirement,
    trigger: str,
    trigger_test: str = "source",
) -> str:
    """Emit the rules computing ``name`` for ``requirement``.

    Args:
        ctx: Entity being compiled
        name: Attribute receiving the unsatisfied-group count
        requirement: Parsed requirement
        trigger: Attribute that activates the requirement
        trigger_test: Expression over the trigger's value that must hold

    Returns:
        ``name``
    """
    for g, group in enumerate(requirement.groups):
        group_attr = f"{name}.{g}"
        ctx.rule(group_attr, trigger, "=", f"1 if {trigger_test} else None")

        for i, alternative in enumerate(group.alternatives):
            alt_attr = f"{group_attr}.{i}"
            # Duplicate conjuncts would collapse into one rule
            unique: dict[str, Comparison | Choose] = {}
            for conjunct in alternative.conjuncts:
                unique.setdefault(str(conjunct), conjunct)
            conjuncts = list(unique.values())

            positives = sum(1 for c in conjuncts if not c.holds_when_unset)
            ctx.rule(alt_attr, trigger, "=", f"{positives} if {trigger_test} else None")

            for j, conjunct in enumerate(conjuncts):
                source, test = _conjunct_source(ctx, f"{alt_attr}.{j}", conjunct)
                if conjunct.holds_when_unset:
                    ctx.rule(alt_attr, source, "+", f"None if {test} else 1")
                else:
                    ctx.rule(alt_attr, source, "+", f"-1 if {test} else None")

            ctx.rule(group_attr, alt_attr, "v", "0 if source == 0 else None")

        ctx.rule(name, group_attr, "+=", None)
    return name


def compile_condition(
    ctx: "EntityContext", target: str, condition: Requirement, trigger: str
) -> None:
    """Gate ``target`` on ``condition`` through a helper counter and a '?' rule."""
    helper = compile_requirement(ctx, f"{target}.condition", condition, trigger)
    ctx.rule(target, helper, "?", "source == 0")
