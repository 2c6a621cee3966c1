from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated, Any, AsyncIterator
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, RedirectResponse, StreamingResponse
from fastapi.templating import Jinja2Templates

from nextinbox.api.routes import get_data_service, get_dispatcher, widget_params
from nextinbox.auth import (
    ACCESS_TOKEN_COOKIE,
    CODE_VERIFIER_COOKIE,
    OAUTH_PROVIDERS,
    AuthClient,
    AuthError,
    Identity,
    get_auth_client,
    new_code_verifier,
    require_identity,
)
from nextinbox.config import Settings, get_settings
from nextinbox.pages.common import PageConfig, WidgetConfig, build_widget_endpoint
from nextinbox.pages.dashboard import PAGE_CONFIG as DASHBOARD_PAGE
from nextinbox.pages.logs import PAGE_CONFIG as LOGS_PAGE
from nextinbox.services.data_service import DataService
from nextinbox.services.dispatcher import TestMailDispatcher
from nextinbox.services.log_pipeline import LogView, SORT_KEYS
from nextinbox.services.notification_feed import NotificationFeed

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

# Keep page registration centralized so the sidebar stays consistent across routes.
PAGES: list[PageConfig] = [DASHBOARD_PAGE, LOGS_PAGE]
PAGES_BY_SLUG: dict[str, PageConfig] = {page.slug: page for page in PAGES}

WIDGET_TEMPLATES = {
    "kpi": "partials/kpi.html",
    "table": "partials/log_table.html",
    "list": "partials/notifications.html",
    "form": "partials/test_mail_form.html",
    "preview": "partials/template_preview.html",
}

router = APIRouter()


def format_timestamp(value: Any, tz: Any = None) -> str:
    if not value:
        return "-"
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is not None:
        value = value.astimezone(tz)
    return value.strftime("%b %d, %Y %H:%M")


templates.env.filters["timestamp"] = lambda value: format_timestamp(value, get_settings().timezone)


def toast_header(message: str, level: str = "error") -> dict[str, str]:
    return {"HX-Trigger": json.dumps({"toast": {"level": level, "message": message}})}


def _find_widget(page_id: str, widget_id: str) -> WidgetConfig | None:
    for page in PAGES:
        if page.api_page_id != page_id:
            continue
        for widget in page.widgets:
            if widget.id == widget_id:
                return widget
    return None


def layout_context(request: Request, identity: Identity, settings: Settings) -> dict[str, Any]:
    return {
        "app_name": settings.app_name,
        "user": identity,
        "page_options": [{"slug": cfg.slug, "label": cfg.label, "icon": cfg.icon, "path": f"/{cfg.slug}"} for cfg in PAGES],
        "notifications_endpoint": "/notifications",
        "notifications_stream": "/notifications/stream",
        "test_mail_form_endpoint": build_widget_endpoint("test-mail", "test-mail-form"),
    }


def render_page(request: Request, page: PageConfig, identity: Identity, settings: Settings) -> HTMLResponse:
    query = urlencode(dict(request.query_params))
    widget_bindings = []
    for widget in page.widgets:
        endpoint = build_widget_endpoint(page.api_page_id, widget.id)
        widget_bindings.append(
            {
                "id": widget.id,
                "title": widget.title,
                "kind": widget.kind,
                "icon": widget.icon,
                "css_class": widget.css_class,
                "tooltip": widget.tooltip,
                "endpoint": f"{endpoint}?{query}" if query else endpoint,
            }
        )
    context = layout_context(request, identity, settings)
    context.update(
        {
            "page_title": page.label,
            "current_page_slug": page.slug,
            "layout": page.layout,
            "widgets": widget_bindings,
        }
    )
    return templates.TemplateResponse(request=request, name="page.html", context=context)


@router.get("/", include_in_schema=False)
def home() -> RedirectResponse:
    return RedirectResponse(url=f"/{DASHBOARD_PAGE.slug}")


@router.get("/dashboard")
def dashboard(
    request: Request,
    identity: Identity = Depends(require_identity),
    settings: Settings = Depends(get_settings),
):
    return render_page(request, PAGES_BY_SLUG["dashboard"], identity, settings)


@router.get("/logs")
def logs(
    request: Request,
    identity: Identity = Depends(require_identity),
    settings: Settings = Depends(get_settings),
):
    return render_page(request, PAGES_BY_SLUG["logs"], identity, settings)


def log_table_controls(page_id: str, widget_id: str, view: LogView) -> dict[str, Any]:
    endpoint = build_widget_endpoint(page_id, widget_id)
    sort_links = {key: f"{endpoint}?{urlencode(view.toggle_sort(key).as_params())}" for key in SORT_KEYS}  # type: ignore[arg-type]
    return {
        "view": view,
        "sort_links": sort_links,
        "show_all_link": f"{endpoint}?{urlencode(view.set_show_all(not view.show_all).as_params())}",
        "date_endpoint": endpoint,
    }


@router.get("/widgets/{page}/{widget}", response_class=HTMLResponse)
def widget_partial(
    page: str,
    widget: str,
    request: Request,
    identity: Identity = Depends(require_identity),
    svc: DataService = Depends(get_data_service),
):
    if not svc.has_widget(page, widget):
        raise HTTPException(status_code=404, detail=f"Unknown widget '{page}/{widget}'")
    params = widget_params(request, identity)
    headers: dict[str, str] = {}
    try:
        envelope = svc.get_widget_data(page=page, widget_id=widget, params=params)
    except Exception as exc:
        logger.exception("Widget query failed page=%s widget=%s", page, widget)
        envelope = svc.get_widget_fallback(page=page, widget_id=widget, params=params)
        headers = toast_header(f"An error occurred: {exc}")

    data = envelope["data"]
    template_name = WIDGET_TEMPLATES.get(data.get("kind", ""), "partials/empty.html")
    context: dict[str, Any] = {
        "data": data,
        "widget": _find_widget(page, widget),
        "endpoint": build_widget_endpoint(page, widget),
    }
    if data.get("kind") == "table":
        context.update(log_table_controls(page, widget, LogView.from_params(params)))
    if data.get("kind") == "form":
        context["preview_endpoint"] = build_widget_endpoint(page, "template-preview")
    return templates.TemplateResponse(request=request, name=template_name, context=context, headers=headers)


@router.get("/notifications", response_class=HTMLResponse)
def notifications(
    request: Request,
    identity: Identity = Depends(require_identity),
    svc: DataService = Depends(get_data_service),
):
    headers: dict[str, str] = {}
    try:
        items = svc.get_recent_failures(identity.id)
    except Exception as exc:
        logger.exception("Notification query failed user=%s", identity.id)
        items = []
        headers = toast_header(f"An error occurred: {exc}")
    context = {"data": {"kind": "list", "notifications": items, "unread_count": len(items)}}
    return templates.TemplateResponse(request=request, name="partials/notifications.html", context=context, headers=headers)


def sse_event(event: str, html: str) -> str:
    lines = "".join(f"data: {line}\n" for line in html.splitlines() or [""])
    return f"event: {event}\n{lines}\n"


def _render_feed(feed: NotificationFeed) -> str:
    template = templates.get_template("partials/notifications.html")
    return template.render(data={"kind": "list", "notifications": feed.items, "unread_count": feed.unread_count})


async def notification_events(
    request: Request,
    identity: Identity,
    svc: DataService,
    settings: Settings,
) -> AsyncIterator[str]:
    """Seed the feed, then prepend pushed failures until the client goes away."""
    feed = NotificationFeed(window=svc.notification_window)
    subscription = svc.failed_log_subscription(identity.id)
    try:
        try:
            feed.load(await run_in_threadpool(svc.get_recent_failures, identity.id))
        except Exception:
            logger.exception("Notification seed failed user=%s", identity.id)
        yield sse_event("notifications", _render_feed(feed))

        try:
            await run_in_threadpool(subscription.open)
        except Exception:
            logger.exception("Failed-log subscription could not be opened user=%s", identity.id)
            return

        while not await request.is_disconnected():
            event = await subscription.wait_event(settings.notification_keepalive_seconds)
            if event is None:
                yield ": keepalive\n\n"
                continue
            try:
                accepted = feed.receive(event, now=datetime.now(UTC))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed failed-log event: %s", exc)
                continue
            if accepted:
                yield sse_event("notifications", _render_feed(feed))
    finally:
        # Must not await: this also runs when a disconnect cancels the stream task.
        feed.close()
        subscription.close()


@router.get("/notifications/stream")
def notifications_stream(
    request: Request,
    identity: Identity = Depends(require_identity),
    svc: DataService = Depends(get_data_service),
    settings: Settings = Depends(get_settings),
):
    return StreamingResponse(
        notification_events(request, identity, svc, settings),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/dispatch/test-mail", response_class=HTMLResponse)
async def dispatch_test_mail(
    request: Request,
    service_id: Annotated[str, Form()] = "",
    template_id: Annotated[str, Form()] = "",
    email: Annotated[str, Form()] = "",
    identity: Identity = Depends(require_identity),
    svc: DataService = Depends(get_data_service),
    dispatcher: TestMailDispatcher = Depends(get_dispatcher),
):
    result = dispatcher.validate(service_id, template_id, email)
    if result is None:
        try:
            user_key = await run_in_threadpool(svc.get_user_key, identity.id)
        except Exception as exc:
            logger.exception("Profile lookup failed user=%s", identity.id)
            return templates.TemplateResponse(
                request=request,
                name="partials/dispatch_result.html",
                context={"result": None, "message": f"An error occurred: {exc}"},
                headers=toast_header(f"An error occurred: {exc}"),
            )
        result = await dispatcher.send(user_key, service_id, template_id, email, owner=identity.id)
    level = "success" if result.ok else "error"
    return templates.TemplateResponse(
        request=request,
        name="partials/dispatch_result.html",
        context={"result": result, "message": result.message},
        headers=toast_header(result.message, level),
    )


def _render_auth(request: Request, settings: Settings, notice: str = "", status_code: int = 200):
    return templates.TemplateResponse(
        request=request,
        name="auth.html",
        context={"app_name": settings.app_name, "providers": OAUTH_PROVIDERS, "notice": notice},
        status_code=status_code,
    )


@router.get("/auth")
def auth_page(
    request: Request,
    auth: AuthClient = Depends(get_auth_client),
    settings: Settings = Depends(get_settings),
):
    if auth.get_user(request.cookies.get(ACCESS_TOKEN_COOKIE)) is not None:
        return RedirectResponse(url=f"/{DASHBOARD_PAGE.slug}", status_code=303)
    return _render_auth(request, settings)


@router.get("/auth/login/{provider}")
def auth_login(
    provider: str,
    request: Request,
    auth: AuthClient = Depends(get_auth_client),
    settings: Settings = Depends(get_settings),
):
    verifier = new_code_verifier()
    try:
        url = auth.authorize_url(provider, str(request.url_for("auth_callback")), verifier)
    except AuthError as exc:
        return _render_auth(request, settings, notice=f"Authentication Error: {exc}", status_code=400)
    response = RedirectResponse(url=url, status_code=303)
    response.set_cookie(
        CODE_VERIFIER_COOKIE,
        verifier,
        max_age=600,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite="lax",
    )
    return response


@router.get("/auth/callback", name="auth_callback")
def auth_callback(
    request: Request,
    code: str = "",
    error_description: str = "",
    auth: AuthClient = Depends(get_auth_client),
    settings: Settings = Depends(get_settings),
):
    verifier = request.cookies.get(CODE_VERIFIER_COOKIE, "")
    if error_description or not code or not verifier:
        notice = error_description or "Sign-in was not completed. Please try again."
        return _render_auth(request, settings, notice=f"Authentication Error: {notice}", status_code=400)
    try:
        access_token, identity = auth.exchange_code(code, verifier)
    except (AuthError, httpx.HTTPError) as exc:
        logger.warning("OAuth code exchange failed: %s", exc)
        return _render_auth(request, settings, notice=f"Authentication Error: {exc}", status_code=400)

    logger.info("Signed in user=%s", identity.id)
    response = RedirectResponse(url=f"/{DASHBOARD_PAGE.slug}", status_code=303)
    response.delete_cookie(CODE_VERIFIER_COOKIE)
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        access_token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite="lax",
    )
    return response


@router.post("/auth/logout")
def auth_logout(request: Request, auth: AuthClient = Depends(get_auth_client)):
    auth.sign_out(request.cookies.get(ACCESS_TOKEN_COOKIE))
    response = RedirectResponse(url="/", status_code=303)
    response.delete_cookie(ACCESS_TOKEN_COOKIE)
    return response
