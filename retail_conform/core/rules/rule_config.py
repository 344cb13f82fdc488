"""
Rule configuration management.

Loads the declarative field-rule tables and vocabularies from YAML and
provides a builder for assembling rule sets programmatically.
"""

from importlib import resources
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from retail_conform.core.errors import RuleConfigError
from retail_conform.core.models import QualityFlag
from retail_conform.core.normalizer import PASSTHROUGH, Vocabulary, VocabularyRule

DEFAULT_RULES_RESOURCE = "conformance_rules.yaml"

FieldType = Literal["string", "identifier", "integer", "decimal", "date", "datetime", "category"]

_DEFAULT_FLAGS = {
    "integer": QualityFlag.MALFORMED_QUANTITY,
    "decimal": QualityFlag.MALFORMED_AMOUNT,
    "date": QualityFlag.MALFORMED_DATE,
    "datetime": QualityFlag.MALFORMED_DATE,
}


class FieldRule(BaseModel):
    """
    Declarative rule for one field: type, domain constraint and flags.

    Attributes:
        name: Field name
        type: Target type
        required: Whether blank input raises ``flag``
        domain: Allowed numeric domain
        fallback: Value substituted on failure or violation
        flag: Flag raised when the value is missing (required) or malformed
        violation_flag: Flag raised when the parsed value is outside the domain
        vocabulary: Vocabulary name for category fields
        digits: Total DECIMAL precision for decimal fields
        max_length: Longest accepted value for string and identifier fields
    """

    name: str = Field(..., min_length=1)
    type: FieldType
    required: bool = False
    domain: Literal["any", "non_negative", "positive"] = "any"
    fallback: Literal["null", "zero"] = "null"
    flag: QualityFlag | None = None
    violation_flag: QualityFlag = QualityFlag.NEGATIVE_AMOUNT
    vocabulary: str | None = None
    digits: int | None = Field(default=None, ge=3, le=38)
    max_length: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def check_consistency(self) -> "FieldRule":
        """Fill the default flag and reject rules that cannot be applied."""
        if self.flag is None:
            self.flag = _DEFAULT_FLAGS.get(self.type, QualityFlag.MISSING_VALUE)

        if self.type == "category" and not self.vocabulary:
            raise ValueError(f"Category field '{self.name}' must name a vocabulary")
        if self.type != "category" and self.vocabulary:
            raise ValueError(f"Field '{self.name}' of type {self.type} cannot use a vocabulary")
        if self.max_length is not None and self.type not in ("string", "identifier"):
            raise ValueError(f"Length limits apply to text fields only ('{self.name}')")
        if self.type not in ("integer", "decimal"):
            if self.domain != "any":
                raise ValueError(f"Domain constraints apply to numeric fields only ('{self.name}')")
            if self.fallback != "null":
                raise ValueError(f"Zero fallback applies to numeric fields only ('{self.name}')")
        return self

    @property
    def parser_parameters(self) -> dict[str, Any]:
        parameters: dict[str, Any] = {}
        if self.digits is not None:
            parameters["digits"] = self.digits
        if self.max_length is not None:
            parameters["max_length"] = self.max_length
        return parameters


class DatasetRules(BaseModel):
    """
    Field-rule table for one source dataset.

    Attributes:
        dataset: Dataset name
        source_file: Landing file name
        natural_key: Ordered business-key field names
        fields: Field rules in declaration order
    """

    dataset: str
    source_file: str | None = None
    natural_key: tuple[str, ...] = Field(..., min_length=1)
    fields: tuple[FieldRule, ...] = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_natural_key(self) -> "DatasetRules":
        declared = self.field_names
        if len(set(declared)) != len(declared):
            raise ValueError(f"Dataset '{self.dataset}' declares a field twice")
        undeclared = [name for name in self.natural_key if name not in declared]
        if undeclared:
            raise ValueError(
                f"Natural key of '{self.dataset}' uses undeclared fields: {', '.join(undeclared)}"
            )
        return self

    @property
    def field_names(self) -> list[str]:
        return [rule.name for rule in self.fields]

    def get_field(self, name: str) -> FieldRule:
        for rule in self.fields:
            if rule.name == name:
                return rule
        raise KeyError(name)


class RuleSet(BaseModel):
    """
    Complete conformance configuration: vocabularies and dataset rule tables.
    """

    vocabularies: dict[str, Vocabulary] = Field(default_factory=dict)
    datasets: dict[str, DatasetRules] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_vocabularies(self) -> "RuleSet":
        for dataset in self.datasets.values():
            for rule in dataset.fields:
                if rule.vocabulary and rule.vocabulary != PASSTHROUGH \
                        and rule.vocabulary not in self.vocabularies:
                    raise ValueError(
                        f"Field '{dataset.dataset}.{rule.name}' uses unknown vocabulary "
                        f"'{rule.vocabulary}'"
                    )
        return self

    def for_dataset(self, dataset: str) -> DatasetRules:
        """
        Return the rule table of a dataset.

        Raises:
            RuleConfigError: If no rules are declared for the dataset
        """
        rules = self.datasets.get(dataset)
        if rules is None:
            raise RuleConfigError(f"No field rules declared for dataset '{dataset}'")
        return rules


class RuleConfigLoader:
    """
    Loads the conformance rule set from a YAML configuration file.

    Expected YAML format:
    ```yaml
    vocabularies:
      payment_method:
        - {token: CASH, keywords: [CASH]}
        - {token: CREDIT_CARD, keywords: [CREDIT]}

    datasets:
      pos_transactions:
        source_file: pos_transactions_raw.csv
        natural_key: [transaction_id]
        fields:
          transaction_id: {type: identifier, required: true, flag: MISSING_VALUE}
          discount_amount: {type: decimal, domain: non_negative, fallback: zero}
          payment_method: {type: category, vocabulary: payment_method}
    ```

    Without a path the rule set packaged with the library is loaded.
    """

    def __init__(self, config_path: str | Path | None = None):
        """
        Initialize the rule config loader.

        Args:
            config_path: Path to an override YAML file (default: packaged rules)

        Raises:
            RuleConfigError: If the override file does not exist
        """
        self.config_path = Path(config_path) if config_path else None
        if self.config_path is not None and not self.config_path.exists():
            raise RuleConfigError(f"Rule configuration file not found: {config_path}")

    def _read_text(self) -> str:
        if self.config_path is not None:
            return self.config_path.read_text(encoding="utf-8")
        resource = resources.files("retail_conform.config").joinpath(DEFAULT_RULES_RESOURCE)
        return resource.read_text(encoding="utf-8")

    def load(self) -> RuleSet:
        """
        Load and validate the rule set.

        Returns:
            RuleSet

        Raises:
            RuleConfigError: If the YAML is invalid or a rule is inconsistent
        """
        try:
            config = yaml.safe_load(self._read_text())
        except yaml.YAMLError as e:
            raise RuleConfigError(f"Invalid rule configuration YAML: {e}") from e

        if not config or "datasets" not in config:
            raise RuleConfigError("Configuration file must contain 'datasets' section")

        try:
            vocabularies = {
                name: self._parse_vocabulary(name, rules)
                for name, rules in (config.get("vocabularies") or {}).items()
            }
            datasets = {
                name: self._parse_dataset(name, definition)
                for name, definition in config["datasets"].items()
            }
            return RuleSet(vocabularies=vocabularies, datasets=datasets)
        except ValidationError as e:
            raise RuleConfigError(f"Invalid rule configuration: {e}") from e

    def _parse_vocabulary(self, name: str, rules: Any) -> Vocabulary:
        if not isinstance(rules, list):
            raise RuleConfigError(f"Vocabulary '{name}' must be a list of rules")
        return Vocabulary(name=name, rules=tuple(VocabularyRule(**rule) for rule in rules))

    def _parse_dataset(self, name: str, definition: Any) -> DatasetRules:
        """
        Parse a single dataset definition.

        Args:
            name: Dataset name
            definition: Mapping with source_file, natural_key and fields

        Returns:
            DatasetRules

        Raises:
            RuleConfigError: If the definition is structurally invalid
        """
        if not isinstance(definition, dict) or not isinstance(definition.get("fields"), dict):
            raise RuleConfigError(f"Dataset '{name}' must declare a 'fields' mapping")

        fields = []
        for field_name, rule_def in definition["fields"].items():
            if not isinstance(rule_def, dict) or "type" not in rule_def:
                raise RuleConfigError(f"Rule for field '{name}.{field_name}' is missing 'type'")
            fields.append(FieldRule(name=field_name, **rule_def))

        return DatasetRules(
            dataset=name,
            source_file=definition.get("source_file"),
            natural_key=tuple(definition.get("natural_key") or ()),
            fields=tuple(fields),
        )


class RuleConfigBuilder:
    """
    Programmatically build rule sets (for testing or dynamic rules).
    """

    def __init__(self):
        """Initialize an empty rule set."""
        self.vocabularies: dict[str, list[VocabularyRule]] = {}
        self.datasets: dict[str, dict[str, Any]] = {}

    def add_vocabulary_rule(self, vocabulary: str, token: str, *keywords: str) -> "RuleConfigBuilder":
        """Append a rule to a vocabulary, creating the vocabulary if needed."""
        self.vocabularies.setdefault(vocabulary, []).append(
            VocabularyRule(token=token, keywords=keywords or (token,))
        )
        return self

    def add_dataset(
        self,
        dataset: str,
        natural_key: list[str],
        source_file: str | None = None
    ) -> "RuleConfigBuilder":
        """Declare a dataset and its natural key."""
        self.datasets[dataset] = {
            "natural_key": tuple(natural_key),
            "source_file": source_file,
            "fields": [],
        }
        return self

    def add_field(self, dataset: str, name: str, field_type: str, **options: Any) -> "RuleConfigBuilder":
        """
        Add a field rule to a declared dataset.

        Args:
            dataset: Dataset the field belongs to
            name: Field name
            field_type: Target type
            **options: Any other FieldRule attribute (required, domain, flag, ...)
        """
        if dataset not in self.datasets:
            raise RuleConfigError(f"Dataset '{dataset}' must be added before its fields")
        try:
            rule = FieldRule(name=name, type=field_type, **options)
        except ValidationError as e:
            raise RuleConfigError(f"Invalid rule for field '{dataset}.{name}': {e}") from e
        self.datasets[dataset]["fields"].append(rule)
        return self

    def build(self) -> RuleSet:
        """Build and return the rule set."""
        try:
            return RuleSet(
                vocabularies={
                    name: Vocabulary(name=name, rules=tuple(rules))
                    for name, rules in self.vocabularies.items()
                },
                datasets={
                    name: DatasetRules(
                        dataset=name,
                        source_file=definition["source_file"],
                        natural_key=definition["natural_key"],
                        fields=tuple(definition["fields"]),
                    )
                    for name, definition in self.datasets.items()
                },
            )
        except ValidationError as e:
            raise RuleConfigError(f"Invalid rule configuration: {e}") from e
