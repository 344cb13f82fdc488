"""
Landing-file reader producing raw batches.

Every column is read as a string: typing is the conformance engine's job.
"""

from datetime import datetime, timezone
from pathlib import Path

from pyspark.sql import DataFrame, SparkSession
from pyspark.sql.functions import monotonically_increasing_id

from retail_conform.core.models import Provenance, RawBatch, RawRecord
from retail_conform.core.parsers import parse_datetime_text

SEQUENCE_COLUMN = "_ingest_seq"
PROVENANCE_COLUMNS = ("load_timestamp", "source_file")


class RawBatchReader:
    """
    Reads landing CSV extracts with Spark into RawBatch objects.

    When the extract carries ``load_timestamp`` / ``source_file`` columns
    (as the landing tables do), they become per-record provenance instead
    of attributes.
    """

    def __init__(self, spark: SparkSession):
        """
        Initialize raw batch reader.

        Args:
            spark: Active Spark session
        """
        self.spark = spark

    def read_dataframe(self, file_path: str, delimiter: str = ",") -> DataFrame:
        """
        Read a CSV file with every column typed as string.

        Args:
            file_path: Path to CSV file
            delimiter: Field delimiter

        Returns:
            Spark DataFrame
        """
        return self.spark.read \
            .option("header", "true") \
            .option("inferSchema", "false") \
            .option("delimiter", delimiter) \
            .option("mode", "PERMISSIVE") \
            .csv(file_path)

    def to_batch(
        self,
        df: DataFrame,
        dataset: str,
        batch_id: str,
        source_file: str | None = None,
        arrival_timestamp: datetime | None = None,
    ) -> RawBatch:
        """
        Collect a DataFrame into a RawBatch, preserving row order as sequence.

        Args:
            df: DataFrame of string columns
            dataset: Dataset name
            batch_id: Load batch identifier
            source_file: Default source file name
            arrival_timestamp: Default arrival timestamp (defaults to now, UTC)

        Returns:
            RawBatch
        """
        arrival = arrival_timestamp or datetime.now(timezone.utc)
        attribute_columns = [c for c in df.columns if c not in PROVENANCE_COLUMNS]

        rows = df.withColumn(SEQUENCE_COLUMN, monotonically_increasing_id()) \
            .orderBy(SEQUENCE_COLUMN) \
            .collect()

        records = []
        for sequence, row in enumerate(rows):
            values = row.asDict()
            provenance = Provenance(
                batch_id=batch_id,
                arrival_timestamp=self._row_timestamp(values.get("load_timestamp")) or arrival,
                source_file=values.get("source_file") or source_file,
            )
            records.append(
                RawRecord(
                    dataset=dataset,
                    sequence=sequence,
                    values={column: values.get(column) for column in attribute_columns},
                    provenance=provenance,
                )
            )

        return RawBatch(
            dataset=dataset,
            batch_id=batch_id,
            columns=tuple(attribute_columns),
            records=records,
        )

    @staticmethod
    def _row_timestamp(value: str | None) -> datetime | None:
        if value is None or value.strip() == "":
            return None
        return parse_datetime_text(value.strip())

    @staticmethod
    def file_arrival_timestamp(path: Path) -> datetime:
        """Modification time of a landing file, in UTC."""
        return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)

    def read(
        self,
        file_path: str | Path,
        dataset: str,
        batch_id: str,
        arrival_timestamp: datetime | None = None,
    ) -> RawBatch:
        """
        Read a landing file into a RawBatch.

        Args:
            file_path: Path to the landing CSV
            dataset: Dataset name
            batch_id: Load batch identifier
            arrival_timestamp: Default arrival timestamp (defaults to the
                file modification time)

        Returns:
            RawBatch
        """
        path = Path(file_path)
        if arrival_timestamp is None:
            arrival_timestamp = self.file_arrival_timestamp(path)
        df = self.read_dataframe(str(path))
        return self.to_batch(
            df,
            dataset=dataset,
            batch_id=batch_id,
            source_file=path.name,
            arrival_timestamp=arrival_timestamp,
        )
