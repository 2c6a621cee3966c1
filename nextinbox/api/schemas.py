from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class ResponseMetadata(BaseModel):
    page_id: str
    widget_id: str
    generated_at: datetime


class WidgetResponse(BaseModel):
    metadata: ResponseMetadata
    data: Any
    status: Literal["success", "error"] = "success"


class SendTestMailRequest(BaseModel):
    service_id: str = ""
    template_id: str = ""
    email: str = ""


class DispatchResponse(BaseModel):
    outcome: Literal["success", "validation", "busy", "timeout", "connection", "http_error", "rejected"]
    success: bool
    message: str
    errors: list[str] = Field(default_factory=list)
    status_code: int | None = None
