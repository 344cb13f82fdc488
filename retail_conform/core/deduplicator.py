"""
Deterministic natural-key deduplication.

Duplicates are never deleted. Exactly one record per natural key is marked
current; every other record with that key is kept, flagged and pointed at
the winner.
"""

from typing import Any, Callable, Hashable, Sequence

from retail_conform.core.models import CleanRecord, QualityFlag, QualityIssue


def default_tiebreak(record: CleanRecord) -> tuple[Any, ...]:
    """Latest arrival wins; the higher ingestion sequence breaks exact ties."""
    return (record.provenance.arrival_timestamp, record.sequence)


def resolve_current(
    records: Sequence[CleanRecord],
    natural_key_fn: Callable[[CleanRecord], Hashable | None],
    tiebreak_fn: Callable[[CleanRecord], Any] | None = None,
) -> list[CleanRecord]:
    """
    Mark one record per natural key as current.

    Records whose natural key is None (a key component failed to parse)
    are never current. The function is pure: input records are not
    modified and the result preserves input order.

    Args:
        records: Clean records of one dataset
        natural_key_fn: Extracts the natural key (None when unresolvable)
        tiebreak_fn: Ordering key, greatest wins (default: arrival, sequence)

    Returns:
        New list of records with ``current`` resolved
    """
    tiebreak = tiebreak_fn or default_tiebreak

    # Step 1: pick the winning position per key
    winners: dict[Hashable, int] = {}
    for position, record in enumerate(records):
        key = natural_key_fn(record)
        if key is None:
            continue
        best = winners.get(key)
        if best is None or tiebreak(record) > tiebreak(records[best]):
            winners[key] = position

    # Step 2: mark winners current and flag the rest
    resolved = []
    for position, record in enumerate(records):
        key = natural_key_fn(record)
        if key is None:
            resolved.append(record.model_copy(update={"current": False}))
            continue

        winner_position = winners[key]
        if winner_position == position:
            resolved.append(record.model_copy(update={"current": True}))
            continue

        winner = records[winner_position]
        issue = QualityIssue(
            flag=QualityFlag.DUPLICATE_RECORD,
            message=f"Superseded by sequence {winner.sequence} for key {list(key) if isinstance(key, tuple) else key}",
        )
        resolved.append(
            record.model_copy(
                update={
                    "current": False,
                    "flags": record.flags | {QualityFlag.DUPLICATE_RECORD},
                    "issues": record.issues + (issue,),
                }
            )
        )

    return resolved
