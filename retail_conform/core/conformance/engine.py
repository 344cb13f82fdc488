"""
Conformance engine: raw batch to typed, flagged, deduplicated clean records.

Flow per batch: schema check -> field rules -> normalization -> derivation
and reconciliation -> deduplication. Every raw record yields exactly one
clean record.
"""

from collections import Counter
from decimal import Decimal
from typing import Any, Sequence

from pydantic import BaseModel, Field

from retail_conform.core.deduplicator import resolve_current
from retail_conform.core.errors import SchemaMismatchError
from retail_conform.core.models import CleanRecord, QualityFlag, RawBatch, RawRecord
from retail_conform.core.normalizer import CategoricalNormalizer
from retail_conform.core.reconciler import DEFAULT_TOLERANCE, RecordReconciler
from retail_conform.core.rules import DatasetRules, FieldRuleEngine, RuleSet
from retail_conform.observability.logger import get_logger

from .derivations import derive

logger = get_logger(__name__)


class ConformanceSummary(BaseModel):
    """
    Counts describing one conformed batch.

    Attributes:
        dataset: Dataset name
        batch_id: Load batch identifier
        total_records: Clean records produced (equals raw records read)
        current_records: Records marked current
        superseded_records: Records superseded by a duplicate
        unkeyed_records: Records whose natural key could not be resolved
        flag_counts: Number of records carrying each flag
    """

    dataset: str
    batch_id: str
    total_records: int = 0
    current_records: int = 0
    superseded_records: int = 0
    unkeyed_records: int = 0
    flag_counts: dict[str, int] = Field(default_factory=dict)


class ConformanceResult(BaseModel):
    """Clean records of a batch, in input order, plus their summary."""

    records: list[CleanRecord]
    summary: ConformanceSummary

    @property
    def current_records(self) -> list[CleanRecord]:
        return [record for record in self.records if record.current]


class ConformanceEngine:
    """
    Conforms raw batches of any declared dataset.

    One FieldRuleEngine is built per dataset from the rule set; the
    categorical normalizer and the reconciler are shared.
    """

    def __init__(self, rule_set: RuleSet, tolerance: Decimal | str | float = DEFAULT_TOLERANCE):
        """
        Initialize the conformance engine.

        Args:
            rule_set: Vocabularies and dataset rule tables
            tolerance: Absolute reconciliation tolerance
        """
        self.rule_set = rule_set
        self.normalizer = CategoricalNormalizer(rule_set.vocabularies.values())
        self.reconciler = RecordReconciler(tolerance)
        self.field_engines: dict[str, FieldRuleEngine] = {
            name: FieldRuleEngine(rules, self.normalizer)
            for name, rules in rule_set.datasets.items()
        }

    def conform(self, batch: RawBatch) -> ConformanceResult:
        """
        Conform a raw batch.

        Args:
            batch: Raw batch of one dataset

        Returns:
            ConformanceResult with one clean record per raw record

        Raises:
            RuleConfigError: If the dataset has no rule table
            SchemaMismatchError: If the batch lacks declared columns
        """
        return self.conform_batches([batch])

    def conform_batches(self, batches: Sequence[RawBatch]) -> ConformanceResult:
        """
        Conform several batches of the same dataset together.

        Deduplication runs across all batches, so a record in a later
        batch supersedes an earlier one with the same natural key.

        Args:
            batches: Raw batches of one dataset, at least one

        Returns:
            ConformanceResult with records in batch order, then record order
        """
        if not batches:
            raise ValueError("At least one batch is required")
        dataset = batches[0].dataset
        if any(batch.dataset != dataset for batch in batches):
            raise ValueError("All batches must belong to the same dataset")

        rules = self.rule_set.for_dataset(dataset)

        # Step 1: Schema check
        for batch in batches:
            self.check_schema(batch, rules)

        # Step 2: Field rules, normalization and derivations
        conformed = [
            self.conform_record(record, rules)
            for batch in batches
            for record in batch.records
        ]

        # Step 3: Deduplicate
        records = resolve_current(conformed, lambda record: record.natural_key)

        batch_id = ",".join(dict.fromkeys(batch.batch_id for batch in batches))
        summary = self._summarize(dataset, batch_id, records)
        logger.info(
            f"Conformed {summary.total_records} {dataset} records "
            f"({summary.current_records} current, {summary.superseded_records} superseded)",
            extra={"dataset": dataset, "batch_id": batch_id},
        )
        return ConformanceResult(records=records, summary=summary)

    def check_schema(self, batch: RawBatch, rules: DatasetRules) -> None:
        """
        Verify that every declared field is present in the batch columns.

        Extra columns are ignored. An empty batch carries no header and
        always passes.

        Raises:
            SchemaMismatchError: If any declared field is missing
        """
        if len(batch) == 0:
            return

        columns = set(batch.columns)
        missing = [name for name in rules.field_names if name not in columns]
        if missing:
            raise SchemaMismatchError(batch.dataset, missing)

    def conform_record(self, raw: RawRecord, rules: DatasetRules) -> CleanRecord:
        """
        Type, normalize and derive one raw record.

        The result is not yet deduplicated (``current`` is False).
        """
        outcome = self.field_engines[rules.dataset].apply(raw)
        derivation = derive(rules.dataset, outcome.values, self.reconciler)

        values: dict[str, Any] = {**outcome.values, **derivation.values}
        issues = tuple(outcome.issues) + tuple(derivation.issues)

        return CleanRecord(
            dataset=rules.dataset,
            sequence=raw.sequence,
            natural_key=self._natural_key(values, rules),
            values=values,
            source_values=derivation.source_values,
            flags=frozenset(issue.flag for issue in issues),
            issues=issues,
            provenance=raw.provenance,
        )

    @staticmethod
    def _natural_key(values: dict[str, Any], rules: DatasetRules) -> tuple[Any, ...] | None:
        key = tuple(values.get(name) for name in rules.natural_key)
        if any(component is None for component in key):
            return None
        return key

    @staticmethod
    def _summarize(dataset: str, batch_id: str, records: list[CleanRecord]) -> ConformanceSummary:
        flag_counts: Counter = Counter()
        for record in records:
            flag_counts.update(flag.value for flag in record.flags)

        unkeyed = sum(1 for record in records if record.natural_key is None)
        superseded = sum(1 for record in records if record.has_flag(QualityFlag.DUPLICATE_RECORD))

        return ConformanceSummary(
            dataset=dataset,
            batch_id=batch_id,
            total_records=len(records),
            current_records=sum(1 for record in records if record.current),
            superseded_records=superseded,
            unkeyed_records=unkeyed,
            flag_counts=dict(sorted(flag_counts.items())),
        )
