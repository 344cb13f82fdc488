"""
Grain uniqueness enforcement for fact tables.
"""

from typing import Any, Hashable


class GrainIndex:
    """
    Tracks claimed grain keys of one fact table.

    The first candidate to claim a grain owns it; later claimants are
    told who holds it so they can be quarantined.
    """

    def __init__(self, fact_table: str):
        self.fact_table = fact_table
        self._owners: dict[tuple[Any, ...], Hashable] = {}

    def claim(self, grain_key: tuple[Any, ...], owner: Hashable) -> Hashable | None:
        """
        Claim a grain key.

        Args:
            grain_key: Grain tuple of the candidate row
            owner: Identifier of the candidate (e.g. dataset and sequence)

        Returns:
            None when the claim succeeded, otherwise the current owner
        """
        existing = self._owners.get(grain_key)
        if existing is not None:
            return existing
        self._owners[grain_key] = owner
        return None

    def __contains__(self, grain_key: tuple[Any, ...]) -> bool:
        return grain_key in self._owners

    def __len__(self) -> int:
        return len(self._owners)
