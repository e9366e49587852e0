"""Identity, company and session data models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import Field

from reglo_client.schemas.base_schema import WireModel


class AutoscuolaRole(str, Enum):
    """Role a user holds inside one driving-school company."""
    OWNER = "OWNER"
    INSTRUCTOR = "INSTRUCTOR"
    STUDENT = "STUDENT"


class SessionStatus(str, Enum):
    LOADING = "loading"
    UNAUTHENTICATED = "unauthenticated"
    COMPANY_SELECT = "company_select"
    READY = "ready"


class UserPublic(WireModel):
    id: str
    name: Optional[str] = None
    email: str
    role: str = "member"


class CompanySummary(WireModel):
    """Company as listed for the signed-in user."""
    id: str
    name: str
    role: str = "member"
    autoscuola_role: Optional[AutoscuolaRole] = None


class MePayload(WireModel):
    user: UserPublic
    companies: list[CompanySummary] = Field(default_factory=list)
    active_company_id: Optional[str] = None
    autoscuola_role: Optional[AutoscuolaRole] = None
    instructor_id: Optional[str] = None


class AuthPayload(MePayload):
    """Login/signup response: the identity payload plus a bearer token."""
    token: str
    expires_at: Optional[str] = None


class SelectCompanyPayload(WireModel):
    active_company_id: str


class SignupInput(WireModel):
    company_name: str
    name: str
    email: str
    password: str
    confirm_password: str


@dataclass(frozen=True)
class SessionState:
    """Snapshot of the session as seen by the rest of the app."""
    status: SessionStatus
    user: Optional[UserPublic] = None
    companies: list[CompanySummary] = field(default_factory=list)
    active_company_id: Optional[str] = None
    autoscuola_role: Optional[AutoscuolaRole] = None
    instructor_id: Optional[str] = None

    @classmethod
    def loading(cls) -> "SessionState":
        return cls(status=SessionStatus.LOADING)

    @classmethod
    def unauthenticated(cls) -> "SessionState":
        return cls(status=SessionStatus.UNAUTHENTICATED)

    @property
    def is_ready(self) -> bool:
        return self.status == SessionStatus.READY
