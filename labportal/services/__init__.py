"""
Service layer for business logic.

This module contains the flows behind each page and the invite function.

Note: The password change wizard and the notifier are session-bound and
are not re-exported here. Import them directly from their modules:
- from labportal.services.password_change import PasswordChangeWizard
- from labportal.services.notifications import Notifier
"""
from labportal.services.auth_service import AuthService
from labportal.services.invite_service import InviteService
from labportal.services.patient_service import PatientService
from labportal.services.profile_service import ProfileService
from labportal.services.session_cache import SessionCache

__all__ = [
    "AuthService",
    "InviteService",
    "PatientService",
    "ProfileService",
    "SessionCache",
]
