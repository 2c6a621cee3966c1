from __future__ import annotations

import logging
from datetime import timedelta
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool

from nextinbox.api.schemas import DispatchResponse, SendTestMailRequest, WidgetResponse
from nextinbox.auth import Identity, require_identity
from nextinbox.config import get_settings
from nextinbox.services.data_service import DataService
from nextinbox.services.dispatcher import TestMailDispatcher
from nextinbox.services.sql_adapter import SqlAdapter

logger = logging.getLogger(__name__)

router = APIRouter()
_settings = get_settings()
_service = DataService(
    SqlAdapter(),
    tz=_settings.timezone,
    notification_window=timedelta(hours=_settings.notification_window_hours),
    recipient_name=f"{_settings.app_name} User",
)
_dispatcher = TestMailDispatcher(
    _settings.api_url,
    _settings.app_name,
    timeout_seconds=_settings.dispatch_timeout_seconds,
)


def get_data_service() -> DataService:
    return _service


def get_dispatcher() -> TestMailDispatcher:
    return _dispatcher


def widget_params(request: Request, identity: Identity) -> dict[str, Any]:
    params: dict[str, Any] = dict(request.query_params)
    params["user_id"] = identity.id
    return params


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/api/v1/widgets")
def list_widgets(
    page: Annotated[str, Query()] = "dashboard",
    svc: DataService = Depends(get_data_service),
) -> dict[str, list[str]]:
    try:
        return {"widgets": svc.list_widgets(page)}
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/api/v1/{page}/{widget}", response_model=WidgetResponse)
def get_widget(
    page: str,
    widget: str,
    request: Request,
    identity: Identity = Depends(require_identity),
    svc: DataService = Depends(get_data_service),
) -> WidgetResponse:
    if not svc.has_widget(page, widget):
        raise HTTPException(status_code=404, detail=f"Unknown widget '{page}/{widget}'")
    try:
        payload = svc.get_widget_data(page=page, widget_id=widget, params=widget_params(request, identity))
        return WidgetResponse(**payload)
    except Exception as exc:
        logger.exception("Widget query failed page=%s widget=%s", page, widget)
        raise HTTPException(status_code=500, detail=f"Widget query failed: {exc}") from exc


@router.post("/api/v1/dispatch/test-mail", response_model=DispatchResponse)
async def send_test_mail(
    body: SendTestMailRequest,
    identity: Identity = Depends(require_identity),
    svc: DataService = Depends(get_data_service),
    dispatcher: TestMailDispatcher = Depends(get_dispatcher),
) -> DispatchResponse:
    invalid = dispatcher.validate(body.service_id, body.template_id, body.email)
    if invalid is not None:
        return DispatchResponse(**invalid.as_dict())
    try:
        user_key = await run_in_threadpool(svc.get_user_key, identity.id)
    except Exception as exc:
        logger.exception("Profile lookup failed user=%s", identity.id)
        raise HTTPException(status_code=500, detail=f"Profile query failed: {exc}") from exc
    result = await dispatcher.send(user_key, body.service_id, body.template_id, body.email, owner=identity.id)
    return DispatchResponse(**result.as_dict())
