"""
QualityFlag and QualityIssue models describing data-quality findings.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel


class IssueCategory(str, Enum):
    """Error taxonomy a quality flag belongs to."""

    MALFORMED_VALUE = "MalformedValue"
    BUSINESS_RULE_VIOLATION = "BusinessRuleViolation"
    RECONCILIATION_MISMATCH = "ReconciliationMismatch"
    DUPLICATE_RECORD = "DuplicateRecord"
    UNRESOLVED_REFERENCE = "UnresolvedReference"


class QualityFlag(str, Enum):
    """
    Closed set of issue codes a clean record or fact candidate may carry.

    Flags are additive: a record carries a set of them, and none of them
    causes the record to be deleted.
    """

    MALFORMED_DATE = "MALFORMED_DATE"
    MALFORMED_REFERENCE = "MALFORMED_REFERENCE"
    MALFORMED_AMOUNT = "MALFORMED_AMOUNT"
    MALFORMED_QUANTITY = "MALFORMED_QUANTITY"
    MISSING_VALUE = "MISSING_VALUE"
    NEGATIVE_AMOUNT = "NEGATIVE_AMOUNT"
    BELOW_THRESHOLD = "BELOW_THRESHOLD"
    RECONCILIATION_MISMATCH = "RECONCILIATION_MISMATCH"
    DUPLICATE_RECORD = "DUPLICATE_RECORD"
    GRAIN_CONFLICT = "GRAIN_CONFLICT"
    UNRESOLVED_REFERENCE = "UNRESOLVED_REFERENCE"

    @property
    def category(self) -> IssueCategory:
        """Return the taxonomy category of this flag."""
        return _FLAG_CATEGORIES[self]


_FLAG_CATEGORIES = {
    QualityFlag.MALFORMED_DATE: IssueCategory.MALFORMED_VALUE,
    QualityFlag.MALFORMED_REFERENCE: IssueCategory.MALFORMED_VALUE,
    QualityFlag.MALFORMED_AMOUNT: IssueCategory.MALFORMED_VALUE,
    QualityFlag.MALFORMED_QUANTITY: IssueCategory.MALFORMED_VALUE,
    QualityFlag.MISSING_VALUE: IssueCategory.MALFORMED_VALUE,
    QualityFlag.NEGATIVE_AMOUNT: IssueCategory.BUSINESS_RULE_VIOLATION,
    QualityFlag.BELOW_THRESHOLD: IssueCategory.BUSINESS_RULE_VIOLATION,
    QualityFlag.RECONCILIATION_MISMATCH: IssueCategory.RECONCILIATION_MISMATCH,
    QualityFlag.DUPLICATE_RECORD: IssueCategory.DUPLICATE_RECORD,
    QualityFlag.GRAIN_CONFLICT: IssueCategory.DUPLICATE_RECORD,
    QualityFlag.UNRESOLVED_REFERENCE: IssueCategory.UNRESOLVED_REFERENCE,
}


class QualityIssue(BaseModel):
    """
    Detail behind a quality flag, kept for audit.

    Attributes:
        flag: The flag this issue raised
        field_name: Field the issue was found on (None for record-level issues)
        message: Human-readable description
        raw_value: Offending source value, if any
    """

    flag: QualityFlag
    field_name: str | None = None
    message: str
    raw_value: Any = None

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "flag": "NEGATIVE_AMOUNT",
                "field_name": "total_amount",
                "message": "Value -12.50 violates domain non_negative",
                "raw_value": "-12.50"
            }
        }
