"""Pydantic models for patient records and the API response envelope."""
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Attributes an update may touch, in the order they are applied
UPDATABLE_FIELDS = ("name", "address", "conditions", "allergies")


def utc_timestamp() -> str:
    """Sortable UTC timestamp, e.g. ``2024-01-15T10:30:00.123456Z``."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class Patient(BaseModel):
    model_config = ConfigDict(extra="ignore")

    patientId: str
    name: str
    address: str
    conditions: List[str] = []
    allergies: List[str] = []
    createdAt: str
    updatedAt: str


class PatientCreate(BaseModel):
    name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    conditions: List[str]
    allergies: List[str]

    @field_validator("name", "address")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class PatientUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    address: Optional[str] = Field(None, min_length=1)
    conditions: Optional[List[str]] = None
    allergies: Optional[List[str]] = None

    @field_validator("name", "address")
    @classmethod
    def not_blank(cls, v: Optional[str]) -> Optional[str]:
        # null still means "leave unchanged"
        if v is not None and not v.strip():
            raise ValueError("must not be blank")
        return v

    def changes(self) -> List[Tuple[str, Any]]:
        """Return the ``(field, value)`` pairs the caller actually supplied."""
        return [
            (field, getattr(self, field))
            for field in UPDATABLE_FIELDS
            if getattr(self, field) is not None
        ]


class PatientPage(BaseModel):
    patients: List[Patient]
    lastKey: Optional[str] = None


class ApiResponse(BaseModel):
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
