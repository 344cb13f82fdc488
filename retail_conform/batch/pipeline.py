"""
Batch conformance pipeline orchestration.

Coordinates the flow: conform -> build dimensions -> assemble facts ->
rebuild tables
"""

from collections import defaultdict
from typing import Any, Iterable

from pydantic import BaseModel, Field

from retail_conform.core.conformance import ConformanceEngine, ConformanceSummary
from retail_conform.core.models import CleanRecord, RawBatch
from retail_conform.core.rules import RuleConfigLoader, RuleSet
from retail_conform.dimensional import (
    FACT_TABLES,
    PRODUCT_DIMENSION,
    STORE_DIMENSION,
    DateDimension,
    DimensionResolver,
    FactAssembler,
    FactAssemblyResult,
    SurrogateKeyRegistry,
)
from retail_conform.observability.logger import get_logger, log_operation
from retail_conform.observability.metrics import (
    dimension_rows,
    record_conformance,
    record_fact_assembly,
    set_gauge,
    stage_duration_seconds,
    track_duration,
)
from retail_conform.settings import PipelineSettings
from retail_conform.warehouse.schema_mgmt import QUARANTINE_TABLE, clean_table_name
from retail_conform.warehouse.table_store import TableStore

logger = get_logger(__name__)


class PipelineResult(BaseModel):
    """
    Outcome of a pipeline run.

    Attributes:
        conformance: Conformance summary per dataset
        dimension_rows: Row count per dimension table
        fact_rows: Row count per fact table
        quarantined_facts: Number of quarantined fact candidates
        tables_written: Rows written per table, in write order
    """

    conformance: dict[str, ConformanceSummary] = Field(default_factory=dict)
    dimension_rows: dict[str, int] = Field(default_factory=dict)
    fact_rows: dict[str, int] = Field(default_factory=dict)
    quarantined_facts: int = 0
    tables_written: dict[str, int] = Field(default_factory=dict)


class BatchPipeline:
    """
    Orchestrates a full conformance run.

    Flow:
    1. Conform every dataset (all batches of a dataset deduplicated together)
    2. Build date, product and store dimensions with stable surrogate keys
    3. Assemble grain-protected facts, quarantining unresolved candidates
    4. Rebuild clean, registry, dimension, fact and quarantine tables

    Running twice with the same input and the same key registry produces
    identical tables.
    """

    def __init__(
        self,
        store: TableStore,
        rule_set: RuleSet | None = None,
        settings: PipelineSettings | None = None,
    ):
        """
        Initialize batch pipeline.

        Args:
            store: Table store the run rebuilds
            rule_set: Conformance rules (default: loaded from settings.rules_path
                      or the packaged rule file)
            settings: Pipeline settings (default: from environment)
        """
        self.store = store
        self.settings = settings or PipelineSettings.from_env()
        self.rule_set = rule_set or RuleConfigLoader(self.settings.rules_path).load()
        self.engine = ConformanceEngine(self.rule_set, self.settings.reconciliation_tolerance)
        self.dates = DateDimension(self.settings.calendar_start, self.settings.calendar_end)

    def run(self, batches: Iterable[RawBatch]) -> PipelineResult:
        """
        Run the pipeline over raw batches.

        Args:
            batches: Raw batches of any declared datasets

        Returns:
            PipelineResult

        Raises:
            SchemaMismatchError: If a batch lacks declared columns
            TableRebuildError: If a table rebuild fails (the run aborts)
        """
        result = PipelineResult()

        # Step 1: Conform
        with log_operation("conform datasets", logger=logger), \
                track_duration(stage_duration_seconds, stage="conform"):
            clean = self._conform(batches, result)

        # Step 2: Dimensions
        with log_operation("build dimensions", logger=logger), \
                track_duration(stage_duration_seconds, stage="dimensions"):
            registry = self.store.load_key_registry()
            products = DimensionResolver(PRODUCT_DIMENSION, registry)
            stores = DimensionResolver(STORE_DIMENSION, registry)
            products.load(clean.get(PRODUCT_DIMENSION.dataset, []))
            stores.load(clean.get(STORE_DIMENSION.dataset, []))

            result.dimension_rows = {
                "dim_date": len(self.dates),
                PRODUCT_DIMENSION.name: len(products.rows),
                STORE_DIMENSION.name: len(stores.rows),
            }
            for dimension, count in result.dimension_rows.items():
                set_gauge(dimension_rows, count, dimension=dimension)

        # Step 3: Facts
        with log_operation("assemble facts", logger=logger), \
                track_duration(stage_duration_seconds, stage="facts"):
            assembly = FactAssembler(products, stores, self.dates).assemble(clean)
            for fact_table in FACT_TABLES:
                rows = assembly.facts.get(fact_table, [])
                result.fact_rows[fact_table] = len(rows)
                record_fact_assembly(fact_table, len(rows), assembly.quarantine_counts(fact_table))
            result.quarantined_facts = len(assembly.quarantined)

        # Step 4: Rebuild tables
        tables = self._table_plan(clean, registry, products, stores, assembly)
        with log_operation("rebuild tables", logger=logger, tables=len(tables)), \
                track_duration(stage_duration_seconds, stage="load"):
            for table, rows in tables:
                result.tables_written[table] = self.store.replace_table(table, rows)

        logger.info(
            f"Pipeline complete: {sum(result.fact_rows.values())} facts, "
            f"{result.quarantined_facts} quarantined"
        )
        return result

    def _conform(self, batches: Iterable[RawBatch], result: PipelineResult) -> dict[str, list[CleanRecord]]:
        grouped: dict[str, list[RawBatch]] = defaultdict(list)
        for batch in batches:
            grouped[batch.dataset].append(batch)

        clean: dict[str, list[CleanRecord]] = {}
        for dataset in sorted(grouped):
            conformance = self.engine.conform_batches(grouped[dataset])
            clean[dataset] = conformance.records
            summary = conformance.summary
            result.conformance[dataset] = summary
            record_conformance(
                dataset,
                current=summary.current_records,
                superseded=summary.superseded_records,
                unkeyed=summary.unkeyed_records,
                flag_counts=summary.flag_counts,
            )
        return clean

    def _table_plan(
        self,
        clean: dict[str, list[CleanRecord]],
        registry: SurrogateKeyRegistry,
        products: DimensionResolver,
        stores: DimensionResolver,
        assembly: FactAssemblyResult,
    ) -> list[tuple[str, list[dict[str, Any]]]]:
        """
        Order the table rebuilds: clean layer, key registry, dimensions, facts,
        quarantine.
        """
        plan: list[tuple[str, list[dict[str, Any]]]] = []
        for dataset in sorted(clean):
            plan.append((clean_table_name(dataset), [record.to_row() for record in clean[dataset]]))

        plan.append((SurrogateKeyRegistry.TABLE_NAME, registry.to_rows()))
        plan.append(("dim_date", [row.model_dump() for row in self.dates.rows()]))
        plan.append((PRODUCT_DIMENSION.name, [row.model_dump() for row in products.rows]))
        plan.append((STORE_DIMENSION.name, [row.model_dump() for row in stores.rows]))

        for fact_table in FACT_TABLES:
            plan.append((fact_table, [row.to_row() for row in assembly.facts.get(fact_table, [])]))

        plan.append((QUARANTINE_TABLE, [entry.to_row() for entry in assembly.quarantined]))
        return plan
