"""Pydantic request models for the Buprenorphine Pharmacy Locator API."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from agent_03_resolution.algorithms.report_summary import (
    FORMULATION_OPTIONS,
    STANDARDIZED_NOTE_OPTIONS,
)


def _check_known(value: list[str], allowed: tuple[str, ...], label: str) -> list[str]:
    unknown = [v for v in value if v not in allowed]
    if unknown:
        raise ValueError(f"Unknown {label}: {unknown}")
    return value


class _FormOptions(BaseModel):
    standardized_notes: list[str] = Field(
        default_factory=list,
        description="Checkbox labels from the report form",
    )
    formulations: list[str] = Field(default_factory=list)
    notes: str | None = Field(None, max_length=1000, description="Free-text notes")

    @field_validator("standardized_notes")
    @classmethod
    def known_notes(cls, value: list[str]) -> list[str]:
        return _check_known(value, STANDARDIZED_NOTE_OPTIONS, "standardized note(s)")

    @field_validator("formulations")
    @classmethod
    def known_formulations(cls, value: list[str]) -> list[str]:
        return _check_known(value, FORMULATION_OPTIONS, "formulation(s)")


class ReportSubmission(_FormOptions):
    pharmacy_id: str = Field(
        ...,
        min_length=1,
        description="Store key for the pharmacy (map source id or manual id)",
    )
    pharmacy_name: str = Field(..., min_length=1, max_length=200)
    report_type: Literal["success", "denial"] = Field(
        ...,
        description="Whether the prescription was filled",
    )
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    street_address: str = Field("", max_length=200)
    city: str = Field("", max_length=100)
    state: str = Field("", max_length=50)
    zip_code: str = Field("", max_length=10)
    phone_number: str | None = Field(None, max_length=30)
    submission_time: datetime | None = Field(
        None,
        description="Defaults to the time the server receives the report",
    )


class ManualPharmacySubmission(_FormOptions):
    pharmacy_name: str = Field(..., min_length=2, max_length=200)
    street_address: str = Field(..., min_length=3, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=2, max_length=50)
    zip_code: str = Field(..., min_length=5, max_length=10)
    phone_number: str | None = Field(None, max_length=30)
    report_type: Literal["success", "denial"] = "success"

    @property
    def full_address(self) -> str:
        return f"{self.street_address}, {self.city}, {self.state} {self.zip_code}"
