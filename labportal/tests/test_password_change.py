"""
Tests for the two-step password change wizard.
"""
import pytest

from conftest import USER_EMAIL, USER_ID, USER_PASSWORD
from labportal.core.exceptions import ValidationError
from labportal.schemas.auth import AuthSession
from labportal.services.auth_service import RATE_LIMITED
from labportal.services.password_change import (
    ACCOUNT_UNVERIFIABLE,
    CHANGE_STEP,
    CONFIRM_MISMATCH,
    CONFIRM_REQUIRED,
    CURRENT_INCORRECT,
    CURRENT_REQUIRED,
    FIX_BEFORE_CONTINUING,
    FIX_BEFORE_UPDATING,
    NEW_REQUIRED,
    NEW_TOO_SHORT,
    STATE_KEY,
    VERIFY_STEP,
    PasswordChangeWizard,
    validate_new_password,
)


@pytest.fixture
def state():
    return {}


@pytest.fixture
def wizard(supabase_client, state, notifier):
    return PasswordChangeWizard(supabase_client, state, notifier)


@pytest.fixture
def session(provider):
    return AuthSession.model_validate(provider.sign_in(USER_ID))


def toast_messages(notifier):
    return [t.message for t in notifier.pending()]


class TestValidateNewPassword:

    def test_valid(self):
        assert validate_new_password("secret1", "secret1") == {}

    def test_missing_both(self):
        assert validate_new_password("", "") == {
            "new_password": NEW_REQUIRED,
            "confirm_password": CONFIRM_REQUIRED,
        }

    def test_too_short(self):
        assert validate_new_password("abc", "abc") == {"new_password": NEW_TOO_SHORT}

    def test_mismatch(self):
        assert validate_new_password("secret1", "secret2") == {"confirm_password": CONFIRM_MISMATCH}


def test_starts_on_first_step(wizard):
    assert wizard.step == VERIFY_STEP
    assert wizard.errors == {}


@pytest.mark.asyncio
async def test_empty_current_password(wizard, session, notifier):
    with pytest.raises(ValidationError) as exc:
        await wizard.verify_current_password(session, "")

    assert exc.value.errors == {"current_password": CURRENT_REQUIRED}
    assert wizard.step == VERIFY_STEP
    assert toast_messages(notifier) == [FIX_BEFORE_CONTINUING]


@pytest.mark.asyncio
async def test_wrong_current_password(wizard, session, notifier):
    with pytest.raises(ValidationError):
        await wizard.verify_current_password(session, "nope")

    assert wizard.errors == {"current_password": CURRENT_INCORRECT}
    assert toast_messages(notifier) == [CURRENT_INCORRECT]


@pytest.mark.asyncio
async def test_unverifiable_account(wizard, session, provider, notifier):
    provider.revoke(session.access_token)

    with pytest.raises(ValidationError):
        await wizard.verify_current_password(session, USER_PASSWORD)

    assert wizard.errors == {"current_password": ACCOUNT_UNVERIFIABLE}
    assert toast_messages(notifier) == [ACCOUNT_UNVERIFIABLE]


@pytest.mark.asyncio
async def test_correct_password_advances(wizard, session, notifier):
    verified = await wizard.verify_current_password(session, USER_PASSWORD)

    assert verified.user.email == USER_EMAIL
    assert wizard.step == CHANGE_STEP
    # Loading toast is dismissed, success remains
    assert toast_messages(notifier) == ["Current password verified successfully"]


@pytest.mark.asyncio
async def test_change_requires_verification(wizard, session, provider):
    with pytest.raises(ValidationError):
        await wizard.change_password(session, "secret1", "secret1")

    assert wizard.step == VERIFY_STEP
    assert provider.count("PUT", "/auth/v1/user") == 0


@pytest.mark.asyncio
async def test_change_rejects_invalid_input(wizard, session, notifier):
    await wizard.verify_current_password(session, USER_PASSWORD)

    with pytest.raises(ValidationError) as exc:
        await wizard.change_password(session, "abc", "abd")

    assert exc.value.detail == FIX_BEFORE_UPDATING
    assert wizard.step == CHANGE_STEP
    assert wizard.errors == {"new_password": NEW_TOO_SHORT, "confirm_password": CONFIRM_MISMATCH}


@pytest.mark.asyncio
async def test_change_rate_limited(wizard, session, provider, notifier):
    await wizard.verify_current_password(session, USER_PASSWORD)
    provider.fail("PUT", "/auth/v1/user", 429, {"msg": "Email rate limit exceeded"})

    with pytest.raises(ValidationError):
        await wizard.change_password(session, "secret1", "secret1")

    assert wizard.errors == {"new_password": RATE_LIMITED}
    assert toast_messages(notifier)[-1] == RATE_LIMITED


@pytest.mark.asyncio
async def test_change_success_resets(wizard, session, provider, state, notifier):
    await wizard.verify_current_password(session, USER_PASSWORD)

    await wizard.change_password(session, "secret1", "secret1")

    assert provider.users[USER_ID]["password"] == "secret1"
    assert STATE_KEY not in state
    assert wizard.step == VERIFY_STEP
    assert toast_messages(notifier)[-1] == "Your password has been updated successfully"


@pytest.mark.asyncio
async def test_back_clears_errors(wizard, session):
    await wizard.verify_current_password(session, USER_PASSWORD)
    with pytest.raises(ValidationError):
        await wizard.change_password(session, "", "")

    wizard.back()

    assert wizard.step == VERIFY_STEP
    assert wizard.errors == {}


# =============================================================================
# PAGES
# =============================================================================

def test_password_page_requires_login(client):
    response = client.get("/account/password", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/login"


def test_password_change_through_pages(user_client, provider):
    page = user_client.get("/account/password")
    assert "Enter your current password to continue" in page.text

    wrong = user_client.post("/account/password/verify", data={"current_password": "nope"})
    assert wrong.status_code == 400
    assert CURRENT_INCORRECT in wrong.text

    verified = user_client.post(
        "/account/password/verify", data={"current_password": USER_PASSWORD}, follow_redirects=False
    )
    assert verified.status_code == 303
    assert verified.headers["location"] == "/account/password"

    second = user_client.get("/account/password")
    assert "Update Password" in second.text
    assert "Current password verified successfully" in second.text

    short = user_client.post(
        "/account/password/change", data={"new_password": "abc", "confirm_password": "abc"}
    )
    assert short.status_code == 400
    assert NEW_TOO_SHORT in short.text

    done = user_client.post(
        "/account/password/change",
        data={"new_password": "secret1", "confirm_password": "secret1"},
        follow_redirects=False,
    )
    assert done.status_code == 303
    assert done.headers["location"] == "/account"
    assert provider.users[USER_ID]["password"] == "secret1"
    assert "Your password has been updated successfully" in user_client.get("/account").text


def test_back_returns_to_first_step(user_client):
    user_client.post("/account/password/verify", data={"current_password": USER_PASSWORD})

    response = user_client.post("/account/password/back", follow_redirects=False)
    assert response.status_code == 303

    page = user_client.get("/account/password")
    assert "Enter your current password to continue" in page.text


def test_continue_button_starts_disabled(user_client):
    page = user_client.get("/account/password")

    assert '<button type="submit" disabled>Continue</button>' in page.text
    assert 'action="/account/password/verify" data-require-all' in page.text


def test_update_button_starts_disabled(user_client):
    user_client.post("/account/password/verify", data={"current_password": USER_PASSWORD})

    page = user_client.get("/account/password")

    assert '<button type="submit" disabled>Update Password</button>' in page.text
    assert 'action="/account/password/change" data-require-all' in page.text
    assert '<button type="submit">Back</button>' in page.text
