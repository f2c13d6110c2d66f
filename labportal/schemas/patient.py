"""
Pydantic schemas for patient records.
"""
import re
from datetime import date
from typing import Dict, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

GENDERS = ("Male", "Female", "Other")

REFERENCE_PREFIX = "PAT"
_REFERENCE_NUMBER = re.compile(r"^PAT(\d+)")
_NOT_ALPHANUMERIC = re.compile(r"[^a-zA-Z0-9]")


class Patient(BaseModel):
    """Row of the `patients` table.

    Ids are UUIDs for patients created here; older rows may carry numeric
    ids, which are read as strings.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., examples=["0b7c1f0e-3c1a-4d0e-9a57-2f4f3f0c9d11"])
    reference_id: Optional[str] = Field(None, examples=["PAT001-JOHNDOE"])
    first_name: str = Field(..., examples=["John"])
    last_name: str = Field(..., examples=["Doe"])
    gender: Optional[str] = Field(None, examples=["Male"])
    date_of_birth: Optional[str] = Field(None, examples=["1980-04-12"])
    created_at: Optional[str] = None
    last_modified: Optional[str] = None
    total_reports: int = 0

    @field_validator("id", mode="before")
    @classmethod
    def id_as_text(cls, value):
        return str(value) if isinstance(value, int) else value

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class PatientUpdate(BaseModel):
    """Fields accepted by the patient add and update forms.

    Messages are worded for display next to the form field.
    """

    first_name: str = ""
    last_name: str = ""
    gender: str = ""
    date_of_birth: str = ""

    @field_validator("first_name", "last_name", "gender", "date_of_birth", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("first_name")
    @classmethod
    def first_name_length(cls, value: str) -> str:
        if len(value) < 2:
            raise ValueError("First name must be at least 2 characters")
        return value

    @field_validator("last_name")
    @classmethod
    def last_name_length(cls, value: str) -> str:
        if len(value) < 2:
            raise ValueError("Last name must be at least 2 characters")
        return value

    @field_validator("gender")
    @classmethod
    def gender_choice(cls, value: str) -> str:
        if value not in GENDERS:
            raise ValueError("Please select a gender")
        return value

    @field_validator("date_of_birth")
    @classmethod
    def date_of_birth_present(cls, value: str) -> str:
        if not value:
            raise ValueError("Please select a date of birth")
        try:
            date.fromisoformat(value)
        except ValueError:
            raise ValueError("Please select a date of birth")
        return value


def next_reference_number(reference_ids: Iterable[Optional[str]]) -> str:
    """
    Next sequential reference number, e.g. "PAT004" after "PAT003-JANEDOE".

    Ids that do not start with PAT and digits count as zero.
    """
    highest = 0
    for reference_id in reference_ids:
        match = _REFERENCE_NUMBER.match(reference_id or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{REFERENCE_PREFIX}{highest + 1:03d}"


def reference_id_for(number: str, first_name: str, last_name: str) -> str:
    """Reference number joined with up to ten letters and digits of the name."""
    name = _NOT_ALPHANUMERIC.sub("", f"{first_name}{last_name}").upper()[:10]
    return f"{number}-{name}"


def field_errors(exc: ValidationError) -> Dict[str, str]:
    """Flatten a pydantic ValidationError into {field: message}."""
    errors: Dict[str, str] = {}
    for error in exc.errors():
        field = str(error["loc"][0]) if error["loc"] else "__root__"
        message = error["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.setdefault(field, message)
    return errors
