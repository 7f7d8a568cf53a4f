"""Heuristic intent extraction and validation for agent requests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from claimguard.models import (
    FirewallAction,
    FirewallRequest,
    Intent,
    IntentScope,
    IntentType,
    IntentValidation,
)

ACTION_INTENTS: Dict[FirewallAction, IntentType] = {
    FirewallAction.WRITE: IntentType.CREATE,
    FirewallAction.MODIFY: IntentType.MODIFY,
    FirewallAction.DELETE: IntentType.DELETE,
    FirewallAction.EXECUTE: IntentType.MODIFY,
}

MIN_INTENT_CONFIDENCE = 0.3


@dataclass
class ValidationRule:
    name: str
    check: Callable[[Intent], bool]
    message: str


def infer_scope(target: str) -> IntentScope:
    if "package.json" in target or "tsconfig" in target:
        return IntentScope.PROJECT
    if target.endswith((".ts", ".js")):
        return IntentScope.FILE
    return IntentScope.MODULE


def default_rules() -> List[ValidationRule]:
    return [
        ValidationRule(
            name="non-empty-target",
            check=lambda intent: bool(intent.target.strip()),
            message="Intent must have a valid target",
        ),
        ValidationRule(
            name="valid-scope",
            check=lambda intent: intent.scope in IntentScope,
            message="Intent must have a valid scope",
        ),
        ValidationRule(
            name="reasonable-confidence",
            check=lambda intent: intent.confidence >= MIN_INTENT_CONFIDENCE,
            message="Intent confidence is too low",
        ),
    ]


class IntentValidator:
    """Derives what an agent is trying to do and checks it against simple rules."""

    def __init__(self, rules: Optional[List[ValidationRule]] = None) -> None:
        self.rules = rules if rules is not None else default_rules()

    def add_rule(self, rule: ValidationRule) -> None:
        self.rules.append(rule)

    def extract_intent(self, request: FirewallRequest) -> Intent:
        description = request.context.get("description", "")
        return Intent(
            type=ACTION_INTENTS.get(request.action, IntentType.MODIFY),
            target=request.target,
            scope=infer_scope(request.target),
            description=str(description) if description else "",
            confidence=0.5,
        )

    async def validate(self, request: FirewallRequest) -> IntentValidation:
        intent = self.extract_intent(request)
        warnings = [rule.message for rule in self.rules if not rule.check(intent)]
        return IntentValidation(
            valid=not warnings,
            intent=intent,
            reason="; ".join(warnings) if warnings else None,
            warnings=warnings,
        )
