"""
Tests for patient viewing and the admin-only update form.
"""
import pytest

from conftest import ADMIN_ID, PATIENT_ID, USER_ID
from labportal.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from labportal.schemas.auth import AuthSession
from labportal.schemas.patient import Patient, PatientUpdate, field_errors, next_reference_number, reference_id_for
from labportal.services.patient_service import (
    ADMIN_ONLY,
    ADMIN_ONLY_ADD,
    ADMIN_ONLY_DELETE,
    ADMIN_ONLY_LIST,
    INVALID_ID,
    export_csv,
)
from pydantic import ValidationError as PydanticValidationError

VALID_FORM = {
    "first_name": "Johnny",
    "last_name": "Doe",
    "gender": "Other",
    "date_of_birth": "1980-04-13",
}


def patient_row(provider):
    return next(r for r in provider.tables["patients"] if r["id"] == PATIENT_ID)


def add_second_patient(provider):
    """Jane is newer than John and has no reports; John gets two."""
    provider.add_row(
        "patients", id="c3d4", reference_id="PAT003-JANESMITH", first_name="Jane", last_name="Smith",
        gender="Female", date_of_birth="1990-06-01", created_at="2024-05-01T09:00:00+00:00", last_modified=None,
    )
    provider.add_row("reports", id=1, patient_id=PATIENT_ID)
    provider.add_row("reports", id=2, patient_id=PATIENT_ID)


def admin_session(provider):
    return AuthSession.model_validate(provider.sign_in(ADMIN_ID))


# =============================================================================
# FORM VALIDATION
# =============================================================================

class TestPatientUpdate:

    def test_valid_form_is_stripped(self):
        data = PatientUpdate.model_validate({**VALID_FORM, "first_name": "  Johnny "})
        assert data.first_name == "Johnny"

    def test_all_fields_reported(self):
        with pytest.raises(PydanticValidationError) as exc:
            PatientUpdate.model_validate({"first_name": "J", "last_name": "", "gender": "", "date_of_birth": ""})

        assert field_errors(exc.value) == {
            "first_name": "First name must be at least 2 characters",
            "last_name": "Last name must be at least 2 characters",
            "gender": "Please select a gender",
            "date_of_birth": "Please select a date of birth",
        }

    def test_unknown_gender(self):
        with pytest.raises(PydanticValidationError) as exc:
            PatientUpdate.model_validate({**VALID_FORM, "gender": "Unknown"})
        assert field_errors(exc.value) == {"gender": "Please select a gender"}

    def test_bad_date(self):
        with pytest.raises(PydanticValidationError) as exc:
            PatientUpdate.model_validate({**VALID_FORM, "date_of_birth": "12/04/1980"})
        assert field_errors(exc.value) == {"date_of_birth": "Please select a date of birth"}

    def test_surrounding_spaces_do_not_count_towards_length(self):
        with pytest.raises(PydanticValidationError) as exc:
            PatientUpdate.model_validate({**VALID_FORM, "first_name": " J"})
        assert field_errors(exc.value) == {"first_name": "First name must be at least 2 characters"}


class TestPatientRecord:

    def test_numeric_id_read_as_text(self):
        patient = Patient.model_validate({"id": 7, "first_name": "John", "last_name": "Doe"})
        assert patient.id == "7"
        assert patient.total_reports == 0


class TestReferenceIds:

    def test_first_patient(self):
        assert next_reference_number([]) == "PAT001"

    def test_follows_highest_number(self):
        existing = ["PAT003-JANESMITH", "PAT010-BOB", None, "PAT-0007", "legacy"]
        assert next_reference_number(existing) == "PAT011"

    def test_name_part_is_alphanumeric_upper_and_short(self):
        assert reference_id_for("PAT004", "Mary-Jane", "O'Neil Smith") == "PAT004-MARYJANEON"


# =============================================================================
# SERVICE
# =============================================================================

@pytest.mark.asyncio
async def test_get_patient(patient_service, provider):
    session = AuthSession.model_validate(provider.sign_in(ADMIN_ID))

    patient = await patient_service.get_patient(session, PATIENT_ID)

    assert patient.full_name == "John Doe"
    assert patient.reference_id == "PAT-0007"


@pytest.mark.asyncio
async def test_get_missing_patient(patient_service, provider):
    session = AuthSession.model_validate(provider.sign_in(ADMIN_ID))
    with pytest.raises(NotFoundError):
        await patient_service.get_patient(session, 999)


@pytest.mark.asyncio
async def test_update_by_admin(patient_service, provider):
    session = AuthSession.model_validate(provider.sign_in(ADMIN_ID))

    patient = await patient_service.update_patient(session, PATIENT_ID, PatientUpdate(**VALID_FORM))

    assert patient.first_name == "Johnny"
    assert patient.gender == "Other"
    assert patient_row(provider)["last_modified"] is not None


@pytest.mark.asyncio
async def test_update_by_non_admin_is_denied(patient_service, provider):
    session = AuthSession.model_validate(provider.sign_in(USER_ID))

    with pytest.raises(PermissionDeniedError) as exc:
        await patient_service.update_patient(session, PATIENT_ID, PatientUpdate(**VALID_FORM))

    assert exc.value.detail == ADMIN_ONLY
    assert provider.count("PATCH", "/rest/v1/patients") == 0
    assert patient_row(provider)["first_name"] == "John"


@pytest.mark.asyncio
async def test_update_missing_patient(patient_service, provider):
    session = AuthSession.model_validate(provider.sign_in(ADMIN_ID))
    with pytest.raises(NotFoundError):
        await patient_service.update_patient(session, 999, PatientUpdate(**VALID_FORM))


@pytest.mark.asyncio
async def test_list_is_newest_first_with_report_counts(patient_service, provider):
    add_second_patient(provider)

    patients = await patient_service.list_patients(admin_session(provider))

    assert [p.full_name for p in patients] == ["Jane Smith", "John Doe"]
    assert [p.total_reports for p in patients] == [0, 2]


@pytest.mark.asyncio
async def test_list_filters_by_name_and_gender(patient_service, provider):
    add_second_patient(provider)
    session = admin_session(provider)

    assert [p.first_name for p in await patient_service.list_patients(session, search="SMI")] == ["Jane"]
    assert [p.first_name for p in await patient_service.list_patients(session, gender="Male")] == ["John"]
    assert len(await patient_service.list_patients(session, gender="all")) == 2


@pytest.mark.asyncio
async def test_list_by_non_admin_is_denied(patient_service, provider):
    session = AuthSession.model_validate(provider.sign_in(USER_ID))

    with pytest.raises(PermissionDeniedError) as exc:
        await patient_service.list_patients(session)

    assert exc.value.detail == ADMIN_ONLY_LIST
    assert provider.count("GET", "/rest/v1/patients") == 0


@pytest.mark.asyncio
async def test_create_assigns_next_reference_id(patient_service, provider):
    add_second_patient(provider)

    patient = await patient_service.create_patient(admin_session(provider), PatientUpdate(**VALID_FORM))

    assert patient.reference_id == "PAT004-JOHNNYDOE"
    assert len(patient.id) == 36
    stored = next(r for r in provider.tables["patients"] if r["id"] == patient.id)
    assert stored["first_name"] == "Johnny"
    assert stored["created_at"] == stored["last_modified"]


@pytest.mark.asyncio
async def test_create_by_non_admin_is_denied(patient_service, provider):
    session = AuthSession.model_validate(provider.sign_in(USER_ID))

    with pytest.raises(PermissionDeniedError) as exc:
        await patient_service.create_patient(session, PatientUpdate(**VALID_FORM))

    assert exc.value.detail == ADMIN_ONLY_ADD
    assert provider.count("POST", "/rest/v1/patients") == 0


@pytest.mark.asyncio
async def test_delete_patient(patient_service, provider):
    await patient_service.delete_patient(admin_session(provider), str(PATIENT_ID))
    assert provider.tables["patients"] == []


@pytest.mark.asyncio
async def test_delete_missing_patient(patient_service, provider):
    with pytest.raises(NotFoundError):
        await patient_service.delete_patient(admin_session(provider), "999")


@pytest.mark.asyncio
async def test_delete_needs_an_id(patient_service, provider):
    with pytest.raises(ValidationError) as exc:
        await patient_service.delete_patient(admin_session(provider), "")
    assert exc.value.detail == INVALID_ID


@pytest.mark.asyncio
async def test_delete_by_non_admin_is_denied(patient_service, provider):
    session = AuthSession.model_validate(provider.sign_in(USER_ID))

    with pytest.raises(PermissionDeniedError) as exc:
        await patient_service.delete_patient(session, str(PATIENT_ID))

    assert exc.value.detail == ADMIN_ONLY_DELETE
    assert len(provider.tables["patients"]) == 1


def test_export_csv():
    patient = Patient.model_validate({
        "id": 7, "first_name": "John", "last_name": "Doe", "gender": "Male",
        "date_of_birth": "1980-04-12", "created_at": "2024-03-01T09:00:00+00:00", "total_reports": 2,
    })

    lines = export_csv([patient]).splitlines()

    assert lines == [
        "ID,First Name,Last Name,Gender,Date of Birth,Total Reports,Created At",
        "7,John,Doe,Male,1980-04-12,2,2024-03-01",
    ]


# =============================================================================
# PAGES
# =============================================================================

def test_anonymous_is_sent_to_login(client):
    response = client.get(f"/patients/{PATIENT_ID}", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/login"


def test_non_admin_sees_unauthorized(user_client):
    response = user_client.get(f"/patients/{PATIENT_ID}")
    assert response.status_code == 401
    assert "Unauthorized Access" in response.text


def test_non_admin_cannot_post_update(user_client, provider):
    response = user_client.post(f"/patients/{PATIENT_ID}/edit", data=VALID_FORM)
    assert response.status_code == 401
    assert patient_row(provider)["first_name"] == "John"


def test_admin_views_patient(admin_client):
    response = admin_client.get(f"/patients/{PATIENT_ID}")
    assert response.status_code == 200
    assert "John Doe" in response.text
    assert "PAT-0007" in response.text


def test_missing_patient_renders_404(admin_client):
    response = admin_client.get("/patients/999")
    assert response.status_code == 404
    assert "Page Not Found" in response.text


def test_edit_page_prefills_form(admin_client):
    response = admin_client.get(f"/patients/{PATIENT_ID}/edit")
    assert response.status_code == 200
    assert 'value="John"' in response.text
    assert '<option value="Male" selected>' in response.text


def test_edit_validation_errors(admin_client, provider):
    response = admin_client.post(
        f"/patients/{PATIENT_ID}/edit",
        data={**VALID_FORM, "first_name": "J", "gender": ""},
    )
    assert response.status_code == 400
    assert "First name must be at least 2 characters" in response.text
    assert "Please select a gender" in response.text
    assert provider.count("PATCH", "/rest/v1/patients") == 0


def test_edit_success_redirects_with_toast(admin_client, provider):
    response = admin_client.post(f"/patients/{PATIENT_ID}/edit", data=VALID_FORM, follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == f"/patients/{PATIENT_ID}"

    page = admin_client.get(f"/patients/{PATIENT_ID}")
    assert "Johnny Doe" in page.text
    assert "Patient updated successfully" in page.text


def test_edit_provider_failure_shows_toast(admin_client, provider):
    provider.fail("PATCH", "/rest/v1/patients", 500, {"message": "permission denied for table patients"})

    response = admin_client.post(f"/patients/{PATIENT_ID}/edit", data=VALID_FORM)

    assert response.status_code == 502
    assert "permission denied for table patients" in response.text
    assert "Update Patient" in response.text


def test_edit_page_load_failure_is_an_html_error(admin_client, provider):
    provider.fail("GET", "/rest/v1/patients", 500, {"message": "db down"})

    response = admin_client.get(f"/patients/{PATIENT_ID}/edit", headers={"Accept": "text/html"})

    assert response.status_code == 502
    assert response.headers["content-type"].startswith("text/html")
    assert "db down" in response.text


def test_view_load_failure_is_an_html_error(admin_client, provider):
    provider.fail("GET", "/rest/v1/patients", 500, {"message": "db down"})

    response = admin_client.get(f"/patients/{PATIENT_ID}", headers={"Accept": "text/html"})

    assert response.status_code == 502
    assert response.headers["content-type"].startswith("text/html")
    assert "db down" in response.text
    assert 'class="toast toast-error"' in response.text


def test_update_load_failure_is_an_html_error(admin_client, provider):
    provider.fail("GET", "/rest/v1/patients", 500, {"message": "db down"})

    response = admin_client.post(f"/patients/{PATIENT_ID}/edit", data=VALID_FORM)

    assert response.status_code == 502
    assert response.headers["content-type"].startswith("text/html")
    assert "db down" in response.text
    assert provider.count("PATCH", "/rest/v1/patients") == 0


# -----------------------------------------------------------------------------
# List, add, delete, export
# -----------------------------------------------------------------------------

def test_home_links_admins_to_patients(admin_client):
    assert 'href="/patients"' in admin_client.get("/").text


def test_home_hides_patients_from_non_admins(user_client):
    assert 'href="/patients"' not in user_client.get("/").text


def test_list_page(admin_client, provider):
    add_second_patient(provider)

    response = admin_client.get("/patients")

    assert response.status_code == 200
    assert response.text.index("Jane Smith") < response.text.index("John Doe")
    assert "Total patients: 2" in response.text
    assert f'href="/patients/{PATIENT_ID}"' in response.text


def test_list_page_filters(admin_client, provider):
    add_second_patient(provider)

    response = admin_client.get("/patients", params={"q": "jane", "gender": "all"})

    assert "Jane Smith" in response.text
    assert "John Doe" not in response.text


def test_non_admin_cannot_list(user_client):
    response = user_client.get("/patients")
    assert response.status_code == 401
    assert "Unauthorized Access" in response.text


def test_list_failure_shows_toast(admin_client, provider):
    provider.fail("GET", "/rest/v1/patients", 500, {"message": "db down"})

    response = admin_client.get("/patients")

    assert response.status_code == 502
    assert "db down" in response.text
    assert "No patients found" in response.text


def test_new_patient_page(admin_client):
    response = admin_client.get("/patients/new")
    assert response.status_code == 200
    assert "Add New Patient" in response.text
    assert 'action="/patients/new"' in response.text


def test_add_patient(admin_client, provider):
    response = admin_client.post("/patients/new", data=VALID_FORM, follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/patients"
    assert any(r["first_name"] == "Johnny" for r in provider.tables["patients"])

    page = admin_client.get("/patients")
    assert "Johnny Doe" in page.text
    assert "Patient added successfully" in page.text


def test_add_patient_validation_errors(admin_client, provider):
    response = admin_client.post("/patients/new", data={**VALID_FORM, "last_name": "D"})

    assert response.status_code == 400
    assert "Last name must be at least 2 characters" in response.text
    assert provider.count("POST", "/rest/v1/patients") == 0


def test_add_patient_provider_failure(admin_client, provider):
    provider.fail("POST", "/rest/v1/patients", 409, {"message": "duplicate key value"})

    response = admin_client.post("/patients/new", data=VALID_FORM)

    assert response.status_code == 502
    assert "duplicate key value" in response.text
    assert 'value="Johnny"' in response.text


def test_delete_patient_page(admin_client, provider):
    response = admin_client.post(f"/patients/{PATIENT_ID}/delete", follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/patients"
    assert provider.tables["patients"] == []
    assert "Patient deleted successfully" in admin_client.get("/patients").text


def test_delete_missing_patient_page(admin_client):
    response = admin_client.post("/patients/999/delete", follow_redirects=False)

    assert response.headers["location"] == "/patients"
    assert "Patient not found" in admin_client.get("/patients").text


def test_non_admin_cannot_delete(user_client, provider):
    response = user_client.post(f"/patients/{PATIENT_ID}/delete")
    assert response.status_code == 401
    assert len(provider.tables["patients"]) == 1


def test_export(admin_client, provider):
    add_second_patient(provider)

    response = admin_client.get("/patients/export")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment; filename=\"patients_export_" in response.headers["content-disposition"]
    lines = response.text.splitlines()
    assert lines[0] == "ID,First Name,Last Name,Gender,Date of Birth,Total Reports,Created At"
    assert lines[2] == "7,John,Doe,Male,1980-04-12,2,2024-03-01"
