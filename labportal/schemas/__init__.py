"""
Pydantic schemas for provider payloads and form input.
"""
from labportal.schemas.auth import AuthSession, AuthUser
from labportal.schemas.profile import UserProfile, ProfileUpdate
from labportal.schemas.patient import GENDERS, Patient, PatientUpdate, field_errors
from labportal.schemas.invite import InviteRequest
from labportal.schemas.toast import Toast, ToastKind

__all__ = [
    # Auth schemas
    "AuthSession",
    "AuthUser",
    # Profile schemas
    "UserProfile",
    "ProfileUpdate",
    # Patient schemas
    "GENDERS",
    "Patient",
    "PatientUpdate",
    "field_errors",
    # Invite schemas
    "InviteRequest",
    # Toast schemas
    "Toast",
    "ToastKind",
]
