"""
Service layer for patient operations.

This service contains business logic for listing, adding, viewing,
updating and deleting patients and orchestrates calls to the provider's
`patients` table.

Architecture:
    API Layer (routers) → PatientService → SupabaseClient.table("patients")

Dependency Injection:
    PatientService receives its client via constructor injection.
    Use core.dependencies.get_patient_service() in routers with Depends().
"""
import csv
import io
import logging
import uuid
from typing import Any, Dict, List, Optional

from labportal.clients.supabase_client import SupabaseClient
from labportal.core.datetime_utils import parse_datetime, utc_timestamp
from labportal.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from labportal.schemas.auth import AuthSession
from labportal.schemas.patient import Patient, PatientUpdate, next_reference_number, reference_id_for

logger = logging.getLogger(__name__)

ADMIN_ONLY = "Only administrators can update patients"
ADMIN_ONLY_LIST = "Only administrators can access patients"
ADMIN_ONLY_ADD = "Only administrators can add patients"
ADMIN_ONLY_DELETE = "Only administrators can delete patients"
INVALID_ID = "Invalid patient ID"

UPDATE_FAILED = "Failed to update patient"
FETCH_FAILED = "Failed to fetch patients"
ADD_FAILED = "Failed to add patient"
DELETE_FAILED = "Failed to delete patient"

LIST_COLUMNS = (
    "id, reference_id, first_name, last_name, gender, date_of_birth, "
    "created_at, last_modified, reports(count)"
)

EXPORT_HEADERS = [
    "ID",
    "First Name",
    "Last Name",
    "Gender",
    "Date of Birth",
    "Total Reports",
    "Created At",
]


def _report_count(row: Dict[str, Any]) -> int:
    reports = row.get("reports") or []
    return (reports[0] or {}).get("count", 0) if reports else 0


def _date_only(value: Optional[str]) -> str:
    try:
        return parse_datetime(value).date().isoformat() if value else ""
    except ValueError:
        return value or ""


class PatientService:
    """
    Service layer for patient operations.

    Reads and writes go through the caller's access token; the admin
    check is repeated here so the rule holds whichever route calls it.
    """

    def __init__(self, client: SupabaseClient):
        """
        Initialize the patient service.

        Args:
            client: Provider client (anon key).
                    Injected via core.dependencies.get_patient_service().
        """
        self._client = client

    async def get_role(self, session: AuthSession) -> str:
        """Role stored on the caller's `users` row, empty when there is none."""
        row = await (
            self._client.table("users", session.access_token)
            .select("role")
            .eq("user_id", session.user.id)
            .maybe_single()
        )
        return (row or {}).get("role") or ""

    async def _require_admin(self, session: AuthSession, message: str) -> None:
        if await self.get_role(session) != "admin":
            logger.warning(f"Non-admin patient request rejected: {message}", extra={"user_id": session.user.id})
            raise PermissionDeniedError(message)

    async def list_patients(
        self,
        session: AuthSession,
        search: Optional[str] = None,
        gender: Optional[str] = None,
    ) -> List[Patient]:
        """
        List patients, newest first, with their report counts.

        Args:
            session: Caller's session; the caller must be an admin.
            search: Case-insensitive match on first or last name.
            gender: Exact gender; None or "all" keeps every patient.

        Raises:
            PermissionDeniedError: Caller is not an admin.
            ProviderError: The provider rejected the query.
        """
        await self._require_admin(session, ADMIN_ONLY_LIST)

        rows = await (
            self._client.table("patients", session.access_token)
            .select(LIST_COLUMNS)
            .order("created_at", ascending=False)
            .execute()
        )
        patients = [Patient.model_validate({**row, "total_reports": _report_count(row)}) for row in rows]

        query = (search or "").strip().lower()
        if query:
            patients = [
                p for p in patients
                if query in p.first_name.lower() or query in p.last_name.lower()
            ]
        if gender and gender != "all":
            patients = [p for p in patients if p.gender == gender]

        logger.debug(f"Listed {len(patients)} patients", extra={"search": bool(query), "gender": gender})
        return patients

    async def get_patient(self, session: AuthSession, patient_id: str) -> Patient:
        """
        Get a patient by id.

        Raises:
            NotFoundError: If no such patient exists (or it is not visible).
        """
        row = await (
            self._client.table("patients", session.access_token)
            .select("*")
            .eq("id", patient_id)
            .maybe_single()
        )
        if row is None:
            logger.warning(f"Patient not found: {patient_id}")
            raise NotFoundError("Patient not found", patient_id=patient_id)
        return Patient.model_validate(row)

    async def create_patient(self, session: AuthSession, data: PatientUpdate) -> Patient:
        """
        Add a patient with the next free reference id.

        The reference id is the next PAT number followed by the patient's
        name, e.g. "PAT004-JANEDOE".

        Raises:
            PermissionDeniedError: Caller is not an admin.
            ProviderError: The provider rejected the insert.
        """
        await self._require_admin(session, ADMIN_ONLY_ADD)

        existing = await (
            self._client.table("patients", session.access_token)
            .select("reference_id")
            .order("reference_id", ascending=False)
            .execute()
        )
        number = next_reference_number(row.get("reference_id") for row in existing)

        now = utc_timestamp()
        values = data.model_dump()
        values.update({
            "id": str(uuid.uuid4()),
            "reference_id": reference_id_for(number, data.first_name, data.last_name),
            "created_at": now,
            "last_modified": now,
        })
        rows = await self._client.table("patients", session.access_token).insert(values).execute()

        patient = Patient.model_validate(rows[0] if rows else values)
        logger.info(f"Patient created: id={patient.id}", extra={"reference_id": patient.reference_id})
        return patient

    async def update_patient(
        self,
        session: AuthSession,
        patient_id: str,
        data: PatientUpdate,
    ) -> Patient:
        """
        Update a patient's demographics.

        Args:
            session: Caller's session; the caller must be an admin.
            patient_id: Row id of the patient.
            data: Validated form data.

        Returns:
            Patient: The updated row.

        Raises:
            PermissionDeniedError: Caller is not an admin.
            NotFoundError: No row was updated.
            ProviderError: The provider rejected the update.
        """
        await self._require_admin(session, ADMIN_ONLY)

        values = data.model_dump()
        values["last_modified"] = utc_timestamp()
        rows = await (
            self._client.table("patients", session.access_token)
            .update(values)
            .eq("id", patient_id)
            .execute()
        )
        if not rows:
            raise NotFoundError("Patient not found", patient_id=patient_id)

        logger.info(f"Patient updated successfully: id={patient_id}")
        return Patient.model_validate(rows[0])

    async def delete_patient(self, session: AuthSession, patient_id: str) -> None:
        """
        Delete a patient.

        Raises:
            ValidationError: No patient id given.
            PermissionDeniedError: Caller is not an admin.
            NotFoundError: No row was deleted.
            ProviderError: The provider rejected the delete.
        """
        if not patient_id:
            raise ValidationError(INVALID_ID)
        await self._require_admin(session, ADMIN_ONLY_DELETE)

        rows = await (
            self._client.table("patients", session.access_token)
            .delete()
            .eq("id", patient_id)
            .execute()
        )
        if not rows:
            raise NotFoundError("Patient not found", patient_id=patient_id)
        logger.info(f"Patient deleted: id={patient_id}")


def export_csv(patients: List[Patient]) -> str:
    """Patients as CSV text with a header row."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(EXPORT_HEADERS)
    for p in patients:
        writer.writerow([
            p.id,
            p.first_name,
            p.last_name,
            p.gender or "",
            _date_only(p.date_of_birth),
            p.total_reports,
            _date_only(p.created_at),
        ])
    return buffer.getvalue()
