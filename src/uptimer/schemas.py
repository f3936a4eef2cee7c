from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, field_validator

RESOURCE_KINDS = {"monitor", "cron"}
HTTP_METHODS = {"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"}


def _check_url(v: str) -> str:
    v = v.strip()
    if not v.startswith(("http://", "https://")):
        raise ValueError("URL must start with http:// or https://")
    if len(v) > 2048:
        raise ValueError("URL must be at most 2048 characters")
    return v


def _check_name(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Name is required")
    if len(v) > 255:
        raise ValueError("Name must be at most 255 characters")
    return v


def _check_method(v: str) -> str:
    v = v.upper().strip()
    if v not in HTTP_METHODS:
        raise ValueError(f"Method must be one of: {', '.join(sorted(HTTP_METHODS))}")
    return v


def _check_kind(v: str) -> str:
    v = v.strip().lower()
    if v not in RESOURCE_KINDS:
        raise ValueError('kind must be "monitor" or "cron"')
    return v


# --- Auth Schemas ---

class SignupRequest(BaseModel):
    name: str
    email: EmailStr
    password: str

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v or len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        if len(v) > 255:
            raise ValueError("Name must be at most 255 characters")
        return v

    @field_validator("password")
    @classmethod
    def password_strong_enough(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError("Password must be at least 8 characters")
        if len(v) > 72:
            raise ValueError("Password must be at most 72 characters")
        return v


class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    created_at: datetime

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    message: str
    user: UserResponse


# --- Resource Schemas ---

class MonitorCreate(BaseModel):
    name: str
    url: str
    method: str = "GET"
    check_interval: int = 300
    timeout: int = 30
    expected_status_code: int = 200

    @field_validator("name")
    @classmethod
    def name_valid(cls, v: str) -> str:
        return _check_name(v)

    @field_validator("url")
    @classmethod
    def url_valid(cls, v: str) -> str:
        return _check_url(v)

    @field_validator("method")
    @classmethod
    def method_valid(cls, v: str) -> str:
        return _check_method(v)

    @field_validator("check_interval")
    @classmethod
    def interval_valid(cls, v: int) -> int:
        if v < 30:
            raise ValueError("Check interval must be at least 30 seconds")
        if v > 3600:
            raise ValueError("Check interval must be at most 3600 seconds")
        return v

    @field_validator("timeout")
    @classmethod
    def timeout_valid(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Timeout must be at least 1 second")
        if v > 120:
            raise ValueError("Timeout must be at most 120 seconds")
        return v

    @field_validator("expected_status_code")
    @classmethod
    def status_code_valid(cls, v: int) -> int:
        if v < 100 or v > 599:
            raise ValueError("Expected status code must be between 100 and 599")
        return v


class MonitorResponse(BaseModel):
    id: str
    name: str
    url: str
    method: str
    check_interval: int
    timeout: int
    expected_status_code: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CronJobCreate(BaseModel):
    name: str
    url: str
    method: str = "GET"
    cron_expr: Optional[str] = None
    interval_sec: Optional[int] = None
    timeout: int = 30

    @field_validator("name")
    @classmethod
    def name_valid(cls, v: str) -> str:
        return _check_name(v)

    @field_validator("url")
    @classmethod
    def url_valid(cls, v: str) -> str:
        return _check_url(v)

    @field_validator("method")
    @classmethod
    def method_valid(cls, v: str) -> str:
        return _check_method(v)

    @field_validator("cron_expr")
    @classmethod
    def cron_expr_valid(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            v = " ".join(v.split())
            if len(v.split(" ")) != 5:
                raise ValueError("Cron expression must have 5 fields")
        return v

    @field_validator("interval_sec")
    @classmethod
    def interval_valid(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 60:
            raise ValueError("Interval must be at least 60 seconds")
        return v


class CronJobResponse(BaseModel):
    id: str
    name: str
    url: str
    method: str
    cron_expr: Optional[str] = None
    interval_sec: Optional[int] = None
    timeout: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# --- Incident Schemas ---

class IncidentCreate(BaseModel):
    kind: str
    resource_id: str
    cause: Optional[str] = None
    http_status: Optional[int] = None

    @field_validator("kind")
    @classmethod
    def kind_valid(cls, v: str) -> str:
        return _check_kind(v)

    @field_validator("cause")
    @classmethod
    def cause_valid(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            v = v.strip() or None
        if v is not None and len(v) > 100:
            raise ValueError("cause must be at most 100 characters")
        return v

    @field_validator("http_status")
    @classmethod
    def http_status_valid(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and (v < 100 or v > 599):
            raise ValueError("HTTP status must be between 100 and 599")
        return v


class InternalIncidentCreate(IncidentCreate):
    owner_id: Optional[str] = None


class ResourceRef(BaseModel):
    kind: str
    resource_id: str

    @field_validator("kind")
    @classmethod
    def kind_valid(cls, v: str) -> str:
        return _check_kind(v)


class IncidentAction(BaseModel):
    action: str

    @field_validator("action")
    @classmethod
    def action_valid(cls, v: str) -> str:
        if v not in {"resolve", "reopen"}:
            raise ValueError('action must be "resolve" or "reopen"')
        return v


class IncidentResponse(BaseModel):
    id: str
    kind: str
    resource_id: str
    owner_id: Optional[str] = None
    cause: Optional[str] = None
    http_status: Optional[int] = None
    started_at: datetime
    resolved_at: Optional[datetime] = None
    last_update_at: datetime
    screenshot_ref: Optional[str] = None
    source_name: Optional[str] = None
    source_url: Optional[str] = None

    model_config = {"from_attributes": True}


class IncidentListResponse(BaseModel):
    incidents: list[IncidentResponse]
    total: int
    limit: int
    offset: int


class EventResponse(BaseModel):
    id: str
    incident_id: str
    actor_id: Optional[str] = None
    event_type: str
    content: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class IncidentDetailResponse(BaseModel):
    incident: IncidentResponse
    events: list[EventResponse]


class CommentRequest(BaseModel):
    content: str

    @field_validator("content")
    @classmethod
    def content_not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("content is required")
        if len(v) > 10000:
            raise ValueError("content must be at most 10000 characters")
        return v


class ScreenshotResponse(BaseModel):
    success: bool
    screenshot_ref: Optional[str] = None


# --- Test Run Schemas ---

class TestRunCreate(BaseModel):
    test_type: str
    target_url: str

    @field_validator("target_url")
    @classmethod
    def url_valid(cls, v: str) -> str:
        return _check_url(v)

    @field_validator("test_type")
    @classmethod
    def test_type_valid(cls, v: str) -> str:
        if v not in {"load", "browser"}:
            raise ValueError('test_type must be "load" or "browser"')
        return v


class TestRunFinish(BaseModel):
    status: str
    result: Optional[dict[str, Any]] = None

    @field_validator("status")
    @classmethod
    def status_valid(cls, v: str) -> str:
        if v not in {"completed", "failed"}:
            raise ValueError('status must be "completed" or "failed"')
        return v


class TestRunResponse(BaseModel):
    id: str
    test_type: str
    target_url: str
    status: str
    result_json: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
