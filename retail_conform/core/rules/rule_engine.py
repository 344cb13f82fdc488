"""
Field rule engine for typing and checking raw records.

The engine builds one parser per declared field, applies them to a raw
record in declaration order and collects the typed values together with
every quality issue found along the way.
"""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from retail_conform.core.models import QualityFlag, QualityIssue, RawRecord
from retail_conform.core.normalizer import CategoricalNormalizer
from retail_conform.core.parsers import BaseParser, get_parser

from .rule_config import DatasetRules, FieldRule

_ZERO = {
    "integer": 0,
    "decimal": Decimal("0.00"),
}


class FieldRuleOutcome(BaseModel):
    """Typed values and issues produced for one raw record."""

    values: dict[str, Any] = Field(default_factory=dict)
    issues: list[QualityIssue] = Field(default_factory=list)

    @property
    def flags(self) -> frozenset[QualityFlag]:
        return frozenset(issue.flag for issue in self.issues)


class FieldRuleEngine:
    """
    Applies a dataset's field-rule table to raw records.

    Semantics per field:
    - blank input with a zero fallback becomes 0 without a flag
    - blank input on a required field raises the rule's flag
    - non-blank input that fails to parse raises the flag and takes the fallback
    - a parsed value outside the domain takes the fallback and raises the
      violation flag
    - category fields are normalized through their vocabulary
    """

    def __init__(self, rules: DatasetRules, normalizer: CategoricalNormalizer):
        """
        Initialize the engine for one dataset.

        Args:
            rules: Field-rule table of the dataset
            normalizer: Normalizer holding the vocabularies
        """
        self.rules = rules
        self.normalizer = normalizer
        self.parsers: dict[str, BaseParser] = {}
        self._build_parsers()

    def _build_parsers(self) -> None:
        """Build parser instances from the rule table."""
        for rule in self.rules.fields:
            if rule.type == "category":
                if rule.vocabulary not in self.normalizer.vocabularies:
                    raise ValueError(f"Unknown vocabulary for field '{rule.name}': {rule.vocabulary}")
                continue
            self.parsers[rule.name] = get_parser(rule.type, rule.parser_parameters)

    def apply(self, raw: RawRecord) -> FieldRuleOutcome:
        """
        Type every declared field of a raw record.

        Args:
            raw: The raw record

        Returns:
            FieldRuleOutcome with one value per declared field
        """
        outcome = FieldRuleOutcome()
        for rule in self.rules.fields:
            raw_value = raw.get(rule.name)
            value, issue = self._apply_rule(rule, raw_value)
            outcome.values[rule.name] = value
            if issue is not None:
                outcome.issues.append(issue)
        return outcome

    def _apply_rule(self, rule: FieldRule, raw_value: str | None) -> tuple[Any, QualityIssue | None]:
        blank = raw_value is None or raw_value.strip() == ""
        fallback = _ZERO.get(rule.type) if rule.fallback == "zero" else None

        if blank:
            if rule.fallback == "zero":
                return fallback, None
            if rule.required:
                return None, QualityIssue(
                    flag=rule.flag,
                    field_name=rule.name,
                    message=f"Required field '{rule.name}' is missing",
                    raw_value=raw_value,
                )
            return None, None

        if rule.type == "category":
            return self.normalizer.normalize(raw_value, rule.vocabulary), None

        result = self.parsers[rule.name].parse(raw_value)
        if not result.ok:
            return fallback, QualityIssue(
                flag=rule.flag,
                field_name=rule.name,
                message=result.error or f"Cannot parse '{raw_value}' as {rule.type}",
                raw_value=raw_value,
            )

        if self._violates_domain(rule, result.value):
            return fallback, QualityIssue(
                flag=rule.violation_flag,
                field_name=rule.name,
                message=f"Value {result.value} violates domain {rule.domain}",
                raw_value=raw_value,
            )

        return result.value, None

    @staticmethod
    def _violates_domain(rule: FieldRule, value: Any) -> bool:
        if value is None or rule.domain == "any":
            return False
        if rule.domain == "non_negative":
            return value < 0
        return value <= 0

    def get_rule_summary(self) -> dict[str, Any]:
        """
        Get summary of the loaded rule table.

        Returns:
            Dictionary with field counts by type and the required fields
        """
        counts: dict[str, int] = {}
        for rule in self.rules.fields:
            counts[rule.type] = counts.get(rule.type, 0) + 1
        return {
            "dataset": self.rules.dataset,
            "total_fields": len(self.rules.fields),
            "fields_by_type": counts,
            "required_fields": [rule.name for rule in self.rules.fields if rule.required],
        }
