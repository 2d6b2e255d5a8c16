"""Protection rules that keep selected redundant tracks out of a deletion plan."""

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml

from .models import LOSSLESS_FORMATS


@dataclass
class RuleCondition:
    """
    A single condition evaluated against a track's rule fields.

    Supported operators:
    - Equality: ==, !=
    - Comparison: <, >, <=, >=
    - Membership: in, not in
    - String: contains, matches (regex)
    """

    field: str
    operator: Literal["==", "!=", "<", ">", "<=", ">=", "in", "not in", "contains", "matches"]  # fmt: skip
    value: Union[str, int, float, bool, List[Any]]

    def evaluate(self, item: Dict[str, Any]) -> bool:
        """
        Evaluate this condition against an item.

        Args:
            item: Track fields (see Track.rule_fields)

        Returns:
            True if condition matches, False otherwise
        """
        if self.field not in item:
            return False

        field_value = item[self.field]
        if field_value is None and self.operator not in ("==", "!="):
            return False

        try:
            if self.operator == "==":
                return bool(field_value == self.value)
            elif self.operator == "!=":
                return bool(field_value != self.value)
            elif self.operator == "<":
                return bool(field_value < self.value)  # type: ignore
            elif self.operator == ">":
                return bool(field_value > self.value)  # type: ignore
            elif self.operator == "<=":
                return bool(field_value <= self.value)  # type: ignore
            elif self.operator == ">=":
                return bool(field_value >= self.value)  # type: ignore
            elif self.operator == "in":
                return field_value in self.value  # type: ignore
            elif self.operator == "not in":
                return field_value not in self.value  # type: ignore
            elif self.operator == "contains":
                return str(self.value) in str(field_value)
            elif self.operator == "matches":
                return bool(re.search(str(self.value), str(field_value)))
        except TypeError:
            return False
        return False


@dataclass
class Rule:
    """
    A named set of conditions combined with AND/OR logic.

    "keep" protects a redundant track from deletion; "delete" lets it through.
    Higher priority rules are evaluated first.
    """

    name: str
    action: Literal["keep", "delete"]
    conditions: List[RuleCondition] = field(default_factory=list)
    logic: Literal["AND", "OR"] = "AND"
    priority: int = 50

    def evaluate(self, item: Dict[str, Any]) -> bool:
        if not self.conditions:
            return False

        if self.logic == "AND":
            return all(condition.evaluate(item) for condition in self.conditions)
        else:  # OR
            return any(condition.evaluate(item) for condition in self.conditions)


class RuleEngine:
    """
    Evaluates rules in priority order (highest first).

    The first matching rule decides; without a match the default action
    applies.
    """

    def __init__(self, default_action: Literal["keep", "delete"] = "delete"):
        self.rules: List[Rule] = []
        self.default_action = default_action

    def add_rule(self, rule: Rule) -> None:
        if rule.action not in ("keep", "delete"):
            raise ValueError(f"Invalid rule action: {rule.action}")
        self.rules.append(rule)
        self.rules.sort(key=lambda r: r.priority, reverse=True)

    def match(self, item: Dict[str, Any]) -> Optional[Rule]:
        """Return the first matching rule, or a synthetic default-action rule."""
        for rule in self.rules:
            if rule.evaluate(item):
                return rule
        if self.default_action == "keep":
            return Rule(name="default", action="keep")
        return None

    def evaluate(self, item: Dict[str, Any]) -> Literal["keep", "delete"]:
        rule = self.match(item)
        return rule.action if rule is not None else self.default_action

    @staticmethod
    def get_strategy(
        strategy: str, format_param: Optional[str] = None
    ) -> "RuleEngine":
        """
        Get a rule engine with a built-in strategy pre-loaded.

        Args:
            strategy: eliminate-duplicates, keep-lossless, keep-format or custom
            format_param: Format to protect (required for keep-format)
        """
        engine = RuleEngine(default_action="delete")

        if strategy in ("eliminate-duplicates", "custom"):
            # Nothing protected; custom rules come from load_from_config
            pass

        elif strategy == "keep-lossless":
            engine.add_rule(
                Rule(
                    name="Keep lossless files",
                    action="keep",
                    priority=100,
                    conditions=[
                        RuleCondition(
                            field="format",
                            operator="in",
                            value=sorted(LOSSLESS_FORMATS),
                        )
                    ],
                )
            )

        elif strategy == "keep-format":
            if not format_param:
                raise ValueError("--format required for keep-format strategy")

            fmt = format_param.lower().lstrip(".")
            engine.add_rule(
                Rule(
                    name=f"Keep {fmt} files",
                    action="keep",
                    priority=100,
                    conditions=[RuleCondition(field="format", operator="==", value=fmt)],
                )
            )

        else:
            raise ValueError(f"Unknown strategy: {strategy}")

        return engine

    @staticmethod
    def load_from_config(config_path: Path) -> "RuleEngine":
        """
        Load rules from a YAML or JSON file.

        Example (YAML)::

            default_action: delete
            rules:
              - name: Never touch the archive
                action: keep
                priority: 100
                conditions:
                  - {field: path, operator: contains, value: /archive/}
        """
        with open(config_path, "r") as f:
            if config_path.suffix in [".yaml", ".yml"]:
                try:
                    config = yaml.safe_load(f)
                except yaml.YAMLError as e:
                    raise ValueError(f"Invalid YAML in {config_path}: {e}") from e
            elif config_path.suffix == ".json":
                config = json.load(f)
            else:
                raise ValueError(
                    f"Unsupported rules format: {config_path.suffix}. "
                    "Use .yaml, .yml, or .json"
                )

        if not isinstance(config, dict):
            raise ValueError(f"Rules file must contain a mapping: {config_path}")

        engine = RuleEngine(default_action=config.get("default_action", "delete"))

        for rule_data in config.get("rules", []):
            conditions = [
                RuleCondition(
                    field=cond_data["field"],
                    operator=cond_data["operator"],
                    value=cond_data["value"],
                )
                for cond_data in rule_data.get("conditions", [])
            ]
            engine.add_rule(
                Rule(
                    name=rule_data.get("name", "Unnamed rule"),
                    action=rule_data["action"],
                    conditions=conditions,
                    logic=rule_data.get("logic", "AND"),
                    priority=rule_data.get("priority", 50),
                )
            )

        return engine
