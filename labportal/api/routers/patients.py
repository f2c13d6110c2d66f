"""
Patients router - list, add, view, update and delete pages.

All endpoints require a signed-in admin; other users get the
Unauthorized page. Provider failures are shown to the browser as a
toast on an error page or on the re-rendered form, never as raw JSON.

Architecture:
    HTTP Request → Router (this file) → PatientService → SupabaseClient → provider

Dependency Injection:
    Services are injected via FastAPI's Depends() mechanism.
    The DI chain is defined in core/dependencies.py.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException, Request, status
from fastapi.responses import RedirectResponse, Response
from pydantic import ValidationError as PydanticValidationError

from labportal.api.templating import render
from labportal.core.auth import require_admin, require_session
from labportal.core.datetime_utils import utc_now
from labportal.core.dependencies import get_notifier, get_patient_service
from labportal.core.exceptions import LabPortalError, NotFoundError
from labportal.schemas.auth import AuthSession
from labportal.schemas.patient import Patient, PatientUpdate, field_errors
from labportal.services import PatientService
from labportal.services.notifications import Notifier
from labportal.services.patient_service import (
    ADD_FAILED,
    DELETE_FAILED,
    FETCH_FAILED,
    UPDATE_FAILED,
    export_csv,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/patients",
    tags=["Patients"],
    include_in_schema=False,
    dependencies=[Depends(require_admin)],  # Admin role for every page
)

EMPTY_FORM = {"first_name": "", "last_name": "", "gender": "", "date_of_birth": ""}


def _form_values(first_name: str, last_name: str, gender: str, date_of_birth: str) -> dict:
    return {
        "first_name": first_name,
        "last_name": last_name,
        "gender": gender,
        "date_of_birth": date_of_birth,
    }


def _error_page(
    request: Request,
    notifier: Notifier,
    error: LabPortalError,
    fallback: str,
    back_url: str = "/patients",
):
    """Toast the error and render it in place of the page that failed."""
    message = error.detail or fallback
    notifier.error(message)
    return render(
        request,
        "error.html",
        {"title": fallback, "message": message, "back_url": back_url},
        status_code=error.status_code,
    )


def _render_form(
    request: Request,
    mode: str,
    values: dict,
    errors: Optional[dict] = None,
    patient: Optional[Patient] = None,
    status_code: int = status.HTTP_200_OK,
):
    return render(
        request,
        "patient_form.html",
        {"mode": mode, "patient": patient, "values": values, "errors": errors or {}},
        status_code=status_code,
    )


async def _load_patient(
    patient_service: PatientService,
    session: AuthSession,
    patient_id: str,
) -> Patient:
    try:
        return await patient_service.get_patient(session, patient_id)
    except NotFoundError:
        # Rendered as the standard 404 page
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)


# =============================================================================
# LIST AND EXPORT
# =============================================================================

@router.get("")
async def list_patients(
    request: Request,
    q: str = "",
    gender: str = "all",
    session: AuthSession = Depends(require_session),
    patient_service: PatientService = Depends(get_patient_service),
    notifier: Notifier = Depends(get_notifier),
):
    """Patient list, newest first, filtered by name and gender."""
    try:
        patients = await patient_service.list_patients(session, search=q, gender=gender)
    except LabPortalError as e:
        logger.error("Error fetching patients", extra={"error": e.detail})
        notifier.error(e.detail or FETCH_FAILED)
        return render(
            request,
            "patients.html",
            {"patients": [], "q": q, "gender": gender},
            status_code=e.status_code,
        )
    return render(request, "patients.html", {"patients": patients, "q": q, "gender": gender})


@router.get("/export")
async def export_patients(
    request: Request,
    session: AuthSession = Depends(require_session),
    patient_service: PatientService = Depends(get_patient_service),
    notifier: Notifier = Depends(get_notifier),
):
    """All patients as a CSV download."""
    try:
        patients = await patient_service.list_patients(session)
    except LabPortalError as e:
        logger.error("Error exporting patients", extra={"error": e.detail})
        return _error_page(request, notifier, e, FETCH_FAILED)

    filename = f"patients_export_{utc_now().date().isoformat()}.csv"
    return Response(
        content=export_csv(patients),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# =============================================================================
# ADD
# =============================================================================

@router.get("/new")
async def new_patient_page(request: Request):
    return _render_form(request, "add", dict(EMPTY_FORM))


@router.post("/new")
async def create_patient(
    request: Request,
    first_name: str = Form(""),
    last_name: str = Form(""),
    gender: str = Form(""),
    date_of_birth: str = Form(""),
    session: AuthSession = Depends(require_session),
    patient_service: PatientService = Depends(get_patient_service),
    notifier: Notifier = Depends(get_notifier),
):
    values = _form_values(first_name, last_name, gender, date_of_birth)
    try:
        data = PatientUpdate.model_validate(values)
    except PydanticValidationError as e:
        return _render_form(request, "add", values, field_errors(e), status_code=status.HTTP_400_BAD_REQUEST)

    try:
        await patient_service.create_patient(session, data)
    except LabPortalError as e:
        logger.error("Error adding patient", extra={"error": e.detail})
        notifier.error(e.detail or ADD_FAILED)
        return _render_form(request, "add", values, status_code=e.status_code)

    notifier.success("Patient added successfully")
    return RedirectResponse("/patients", status_code=status.HTTP_303_SEE_OTHER)


# =============================================================================
# VIEW, UPDATE, DELETE
# =============================================================================

@router.get("/{patient_id}")
async def view_patient(
    request: Request,
    patient_id: str,
    session: AuthSession = Depends(require_session),
    patient_service: PatientService = Depends(get_patient_service),
    notifier: Notifier = Depends(get_notifier),
):
    try:
        patient = await _load_patient(patient_service, session, patient_id)
    except LabPortalError as e:
        logger.error(f"Error loading patient {patient_id}", extra={"error": e.detail})
        return _error_page(request, notifier, e, FETCH_FAILED)
    return render(request, "patient.html", {"patient": patient})


@router.get("/{patient_id}/edit")
async def edit_patient_page(
    request: Request,
    patient_id: str,
    session: AuthSession = Depends(require_session),
    patient_service: PatientService = Depends(get_patient_service),
    notifier: Notifier = Depends(get_notifier),
):
    try:
        patient = await _load_patient(patient_service, session, patient_id)
    except LabPortalError as e:
        logger.error(f"Error loading patient {patient_id}", extra={"error": e.detail})
        return _error_page(request, notifier, e, FETCH_FAILED)
    values = patient.model_dump(include={"first_name", "last_name", "gender", "date_of_birth"})
    return _render_form(request, "update", values, patient=patient)


@router.post("/{patient_id}/edit")
async def update_patient(
    request: Request,
    patient_id: str,
    first_name: str = Form(""),
    last_name: str = Form(""),
    gender: str = Form(""),
    date_of_birth: str = Form(""),
    session: AuthSession = Depends(require_session),
    patient_service: PatientService = Depends(get_patient_service),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Validate and save the patient form.

    Field errors re-render the form (400); provider and permission errors
    are shown as a toast on the re-rendered form.
    """
    values = _form_values(first_name, last_name, gender, date_of_birth)
    try:
        patient = await _load_patient(patient_service, session, patient_id)
    except LabPortalError as e:
        logger.error(f"Error loading patient {patient_id}", extra={"error": e.detail})
        return _error_page(request, notifier, e, UPDATE_FAILED)

    try:
        data = PatientUpdate.model_validate(values)
    except PydanticValidationError as e:
        return _render_form(
            request, "update", values, field_errors(e), patient=patient,
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    try:
        await patient_service.update_patient(session, patient_id, data)
    except LabPortalError as e:
        logger.error(f"Error updating patient {patient_id}", extra={"error": e.detail})
        notifier.error(e.detail or UPDATE_FAILED)
        return _render_form(request, "update", values, patient=patient, status_code=e.status_code)

    notifier.success("Patient updated successfully")
    return RedirectResponse(f"/patients/{patient_id}", status_code=status.HTTP_303_SEE_OTHER)


@router.post("/{patient_id}/delete")
async def delete_patient(
    patient_id: str,
    session: AuthSession = Depends(require_session),
    patient_service: PatientService = Depends(get_patient_service),
    notifier: Notifier = Depends(get_notifier),
):
    """Delete and go back to the list; failures go back to the patient."""
    try:
        await patient_service.delete_patient(session, patient_id)
    except LabPortalError as e:
        logger.error(f"Error deleting patient {patient_id}", extra={"error": e.detail})
        notifier.error(e.detail or DELETE_FAILED)
        target = "/patients" if isinstance(e, NotFoundError) else f"/patients/{patient_id}"
        return RedirectResponse(target, status_code=status.HTTP_303_SEE_OTHER)

    notifier.success("Patient deleted successfully")
    return RedirectResponse("/patients", status_code=status.HTTP_303_SEE_OTHER)
