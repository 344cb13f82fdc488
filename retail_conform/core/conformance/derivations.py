"""
Per-dataset derived attributes and business-rule checks.

Each derivation receives the typed values of one record and returns the
derived values, the superseded source values kept for audit, and any
issues raised.
"""

from typing import Any, Callable

from pydantic import BaseModel, Field

from retail_conform.core.models import QualityFlag, QualityIssue
from retail_conform.core.reconciler import RecordReconciler


class Derivation(BaseModel):
    """Output of a dataset derivation."""

    values: dict[str, Any] = Field(default_factory=dict)
    source_values: dict[str, Any] = Field(default_factory=dict)
    issues: list[QualityIssue] = Field(default_factory=list)


def derive_line_item(values: dict[str, Any], reconciler: RecordReconciler) -> Derivation:
    """Recompute the line total and reconcile it with the reported one."""
    derivation = Derivation()
    calculated = reconciler.line_total(values.get("quantity"), values.get("unit_price"))
    reported = values.get("line_total")

    derivation.values["calculated_line_total"] = calculated
    derivation.source_values["line_total"] = reported

    result = reconciler.reconcile(calculated, reported)
    if result.mismatch:
        derivation.issues.append(
            QualityIssue(
                flag=QualityFlag.RECONCILIATION_MISMATCH,
                field_name="line_total",
                message=(
                    f"Reported line_total {reported} differs from calculated "
                    f"{calculated} by {result.difference}"
                ),
                raw_value=str(reported),
            )
        )
    return derivation


def derive_pos_transaction(values: dict[str, Any], reconciler: RecordReconciler) -> Derivation:
    return Derivation(
        values={
            "net_revenue": reconciler.net_revenue(
                values.get("total_amount"),
                values.get("discount_amount"),
                tax=values.get("tax_amount"),
            )
        }
    )


def derive_ecom_order(values: dict[str, Any], reconciler: RecordReconciler) -> Derivation:
    return Derivation(
        values={
            "net_revenue": reconciler.net_revenue(
                values.get("total_amount"),
                values.get("discount_amount"),
                shipping=values.get("shipping_cost"),
            )
        }
    )


def derive_product(values: dict[str, Any], reconciler: RecordReconciler) -> Derivation:
    """Compute the unit margin; a negative margin is flagged but not blocked."""
    derivation = Derivation()
    margin = reconciler.margin(values.get("price"), values.get("cost"))
    derivation.values["margin"] = margin

    if margin is not None and margin < 0:
        derivation.issues.append(
            QualityIssue(
                flag=QualityFlag.NEGATIVE_AMOUNT,
                field_name="margin",
                message=f"Price {values.get('price')} is below cost {values.get('cost')}",
                raw_value=str(margin),
            )
        )
    return derivation


def derive_inventory_snapshot(values: dict[str, Any], reconciler: RecordReconciler) -> Derivation:
    """Compute the period delta and check ending stock against safety stock."""
    derivation = Derivation()
    beginning = values.get("beginning_inventory")
    ending = values.get("ending_inventory")
    safety_stock = values.get("safety_stock")

    derivation.values["calculated_inventory_delta"] = reconciler.inventory_delta(beginning, ending)

    below = ending is not None and safety_stock is not None and ending < safety_stock
    derivation.values["below_safety_stock"] = below
    if below:
        derivation.issues.append(
            QualityIssue(
                flag=QualityFlag.BELOW_THRESHOLD,
                field_name="ending_inventory",
                message=f"Ending inventory {ending} is below safety stock {safety_stock}",
                raw_value=str(ending),
            )
        )
    return derivation


DERIVATIONS: dict[str, Callable[[dict[str, Any], RecordReconciler], Derivation]] = {
    "pos_transactions": derive_pos_transaction,
    "pos_items": derive_line_item,
    "ecom_orders": derive_ecom_order,
    "ecom_items": derive_line_item,
    "inventory_snapshots": derive_inventory_snapshot,
    "products": derive_product,
}


def derive(dataset: str, values: dict[str, Any], reconciler: RecordReconciler) -> Derivation:
    """
    Apply the derivation registered for a dataset.

    Datasets without derived attributes (returns, stores) yield an empty
    Derivation.
    """
    derivation_fn = DERIVATIONS.get(dataset)
    if derivation_fn is None:
        return Derivation()
    return derivation_fn(values, reconciler)
