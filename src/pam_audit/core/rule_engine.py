"""
Dictionary-based Rule Engine for the PAM Audit Engine.
Holds the decision motors and evaluates them in priority order.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .models import Motor, MotorFinding

MotorEvaluator = Callable[[Any], MotorFinding | None]


@dataclass
class MotorRule:
    """Definition of a decision motor rule."""

    rule_id: str
    name: str
    description: str
    motor: Motor
    priority: int
    evaluator: MotorEvaluator | None = None
    enabled: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)


class RuleEngine:
    """
    Dictionary-based rule engine for managing and executing motor rules.

    Rules are evaluated by ascending priority and the first rule that
    returns a finding decides the line. Rules can be added, removed,
    or toggled at runtime.
    """

    def __init__(self) -> None:
        self._rules: dict[str, MotorRule] = {}
        self._motor_index: dict[Motor, list[str]] = {motor: [] for motor in Motor}

    def add_rule(self, rule: MotorRule) -> None:
        """Add a rule to the engine."""
        if rule.rule_id in self._rules:
            raise ValueError(f"Duplicate rule id: {rule.rule_id}")
        self._rules[rule.rule_id] = rule
        self._motor_index[rule.motor].append(rule.rule_id)

    def remove_rule(self, rule_id: str) -> bool:
        """Remove a rule from the engine."""
        if rule_id not in self._rules:
            return False

        rule = self._rules[rule_id]
        self._motor_index[rule.motor].remove(rule_id)
        del self._rules[rule_id]
        return True

    def get_rule(self, rule_id: str) -> MotorRule | None:
        """Get a specific rule by ID."""
        return self._rules.get(rule_id)

    def get_rules_by_motor(self, motor: Motor) -> list[MotorRule]:
        """Get all enabled rules of a motor."""
        return [
            self._rules[rule_id]
            for rule_id in self._motor_index[motor]
            if self._rules[rule_id].enabled
        ]

    def enable_rule(self, rule_id: str) -> bool:
        """Enable a specific rule."""
        if rule_id in self._rules:
            self._rules[rule_id].enabled = True
            return True
        return False

    def disable_rule(self, rule_id: str) -> bool:
        """Disable a specific rule."""
        if rule_id in self._rules:
            self._rules[rule_id].enabled = False
            return True
        return False

    def rules_in_priority(self) -> list[MotorRule]:
        """Enabled rules sorted by priority, then by registration order."""
        ordered = sorted(
            enumerate(self._rules.values()),
            key=lambda pair: (pair[1].priority, pair[0]),
        )
        return [rule for _, rule in ordered if rule.enabled]

    def execute_rule(self, rule: MotorRule, context: Any) -> MotorFinding | None:
        """Execute a single rule against a line context."""
        if not rule.enabled or rule.evaluator is None:
            return None
        return rule.evaluator(context)

    def first_match(self, context: Any) -> tuple[MotorRule, MotorFinding] | None:
        """Run rules in priority order and return the first one that fires."""
        for rule in self.rules_in_priority():
            finding = self.execute_rule(rule, context)
            if finding is not None:
                return rule, finding
        return None

    def list_rules(self) -> list[dict[str, Any]]:
        """List all rules with their status."""
        return [
            {
                "rule_id": rule.rule_id,
                "name": rule.name,
                "motor": rule.motor.value,
                "priority": rule.priority,
                "enabled": rule.enabled,
                "description": rule.description,
            }
            for rule in self._rules.values()
        ]
