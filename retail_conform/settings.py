"""
Pipeline settings read from the environment.
"""

import os
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from retail_conform.core.reconciler import DEFAULT_TOLERANCE
from retail_conform.dimensional.date_dimension import DEFAULT_CALENDAR_END, DEFAULT_CALENDAR_START


class PipelineSettings(BaseModel):
    """
    Runtime settings of the conformance pipeline.

    Attributes:
        reconciliation_tolerance: Absolute tolerance for recomputed totals
        calendar_start: First date of the calendar dimension
        calendar_end: Last date of the calendar dimension
        rules_path: Override rule file (None uses the packaged rules)
    """

    reconciliation_tolerance: Decimal = Field(default=DEFAULT_TOLERANCE, ge=0)
    calendar_start: date = DEFAULT_CALENDAR_START
    calendar_end: date = DEFAULT_CALENDAR_END
    rules_path: str | None = None

    @model_validator(mode="after")
    def check_calendar(self) -> "PipelineSettings":
        if self.calendar_end < self.calendar_start:
            raise ValueError("CALENDAR_END must not be before CALENDAR_START")
        return self

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        """
        Build settings from environment variables.

        Variables: RECONCILIATION_TOLERANCE, CALENDAR_START, CALENDAR_END
        (ISO dates) and CONFORMANCE_RULES_PATH. Unset variables keep their
        defaults.
        """
        values = {
            "reconciliation_tolerance": os.getenv("RECONCILIATION_TOLERANCE"),
            "calendar_start": os.getenv("CALENDAR_START"),
            "calendar_end": os.getenv("CALENDAR_END"),
            "rules_path": os.getenv("CONFORMANCE_RULES_PATH"),
        }
        return cls(**{key: value for key, value in values.items() if value})

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "reconciliation_tolerance": "0.05",
                "calendar_start": "2018-01-01",
                "calendar_end": "2030-12-31",
                "rules_path": None
            }
        }
