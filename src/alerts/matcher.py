"""AlertRuleMatcher — selects notification rules for a target and condition."""

from __future__ import annotations

import structlog

from src.core.types import AlertCondition, AlertRule, Target
from src.storage.base import AlertRuleRepository

logger = structlog.stdlib.get_logger()


def _rule_order(rule: AlertRule) -> tuple[int, str]:
    # Target-scoped rules first, then unscoped; ties broken by id.
    return (0 if rule.target_id is not None else 1, rule.id)


class AlertRuleMatcher:
    """Finds the active rules of a target's owner that fire on a condition.

    A rule matches when it is active, belongs to the target's owner, has the
    same condition, and is either scoped to this target or unscoped. No
    match is a normal outcome and yields an empty list.
    """

    def __init__(self, rules: AlertRuleRepository) -> None:
        self._rules = rules

    async def match(self, target: Target, condition: AlertCondition) -> list[AlertRule]:
        candidates = await self._rules.find_matching(target.owner_id, target.id, condition)
        matched = [
            r for r in candidates
            if r.applies_to(target.owner_id, target.id, condition)
        ]
        matched.sort(key=_rule_order)
        logger.debug(
            "alert_rules_matched",
            target_id=target.id,
            condition=condition,
            candidates=len(candidates),
            matched=len(matched),
        )
        return matched
