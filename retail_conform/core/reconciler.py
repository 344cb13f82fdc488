"""
Cross-field financial reconciliation.

Derived totals are recomputed from their validated inputs and compared
with the source-reported counterpart. The recomputed value is always the
one propagated; the source value is kept for audit only.
"""

from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel

DEFAULT_TOLERANCE = Decimal("0.05")
CENT = Decimal("0.01")


class ReconciliationResult(BaseModel):
    """
    Outcome of comparing a recomputed value against a reported one.

    Attributes:
        value: Recomputed value (propagated downstream)
        reported: Source-reported value (audit only)
        difference: Absolute difference, None when either side is absent
        mismatch: Whether the difference exceeds the tolerance
    """

    value: Decimal | None
    reported: Decimal | None
    difference: Decimal | None = None
    mismatch: bool = False

    class Config:
        frozen = True


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class RecordReconciler:
    """
    Recomputes derived amounts with Decimal arithmetic.

    Every computation returns None when any mandatory input is None so that
    a malformed field never produces a misleading total.
    """

    def __init__(self, tolerance: Decimal | str | float = DEFAULT_TOLERANCE):
        """
        Initialize the reconciler.

        Args:
            tolerance: Absolute tolerance in currency units (inclusive)
        """
        self.tolerance = Decimal(str(tolerance))
        if self.tolerance < 0:
            raise ValueError("Reconciliation tolerance must be non-negative")

    def line_total(self, quantity: int | None, unit_price: Decimal | None) -> Decimal | None:
        """Quantity times unit price, rounded to cents."""
        if quantity is None or unit_price is None:
            return None
        return _money(Decimal(quantity) * unit_price)

    def net_revenue(
        self,
        total: Decimal | None,
        discount: Decimal | None,
        shipping: Decimal | None = None,
        tax: Decimal | None = None,
    ) -> Decimal | None:
        """
        Net revenue of a transaction or order.

        POS transactions add tax, e-commerce orders add shipping. Absent
        discount, shipping and tax count as zero.
        """
        if total is None:
            return None
        net = total - (discount or Decimal(0)) + (shipping or Decimal(0)) + (tax or Decimal(0))
        return _money(net)

    def margin(self, price: Decimal | None, cost: Decimal | None) -> Decimal | None:
        if price is None or cost is None:
            return None
        return _money(price - cost)

    def inventory_delta(self, beginning: int | None, ending: int | None) -> int | None:
        if beginning is None or ending is None:
            return None
        return ending - beginning

    def reconcile(self, recomputed: Decimal | None, reported: Decimal | None) -> ReconciliationResult:
        """
        Compare a recomputed value with its reported counterpart.

        Args:
            recomputed: Value derived from validated inputs
            reported: Value carried by the source

        Returns:
            ReconciliationResult; mismatch only when both sides are present and
            ``|recomputed - reported| > tolerance``
        """
        if recomputed is None or reported is None:
            return ReconciliationResult(value=recomputed, reported=reported)

        difference = abs(recomputed - reported)
        return ReconciliationResult(
            value=recomputed,
            reported=reported,
            difference=difference,
            mismatch=difference > self.tolerance,
        )
