"""
Pydantic Schemas
Version: 2.0

Request and response bodies of the proxy surface.
NO DEPENDENCIES on services.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


# === ENUMS ===

class AttendanceAction(str, Enum):
    WRITE = "write"
    UPDATE = "update"


# === COMMON ===

class ErrorResponse(BaseModel):
    """Uniform error body of every proxy endpoint."""
    ok: bool = False
    message: str
    request_id: Optional[str] = None


# === LOGIN ===

class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: Any) -> str:
        return str(v or "").strip().lower()

    @field_validator("password", mode="before")
    @classmethod
    def coerce_password(cls, v: Any) -> str:
        return "" if v is None else str(v)


# === ATTENDANCE ===

class AttendanceWriteRequest(BaseModel):
    action: AttendanceAction
    date: str = Field(..., min_length=1)
    employee: str = Field(..., min_length=1)
    attendance: str = Field(..., min_length=1)
    key: Optional[str] = None

    def to_upstream(self) -> Dict[str, Any]:
        """Body for the attendance script; key defaults to date + employee."""
        return {
            "action": self.action.value,
            "date": self.date,
            "employee": self.employee,
            "attendance": self.attendance,
            "key": self.key or f"{self.date}{self.employee}",
        }


# === CONFIG ===

class ClientConfigResponse(BaseModel):
    ok: bool = True
    google_creators_script_url: str
    google_myday_script_url: str
    google_brandip_script_url: str
    google_attendance_script_url: str


class MisconfiguredResponse(ErrorResponse):
    missing: List[str] = []
