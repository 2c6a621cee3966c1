import os
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles

from nextinbox.api.routes import get_data_service, router as api_router
from nextinbox.auth import LoginRequired
from nextinbox.config import validate_env
from nextinbox.views import router as views_router

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent / "static"
LOGIN_PATH = "/auth"


@asynccontextmanager
async def lifespan(_: FastAPI):
    validate_env()
    yield
    get_data_service().close()


app = FastAPI(
    title="NextInBox Dashboard",
    description="Server-rendered admin dashboard for the NextInBox email service (HTMX).",
    version="0.1.0",
    lifespan=lifespan,
)
app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")
app.include_router(api_router)
app.include_router(views_router)


@app.exception_handler(LoginRequired)
async def login_required(request: Request, _: LoginRequired) -> Response:
    if request.url.path.startswith("/api/"):
        return JSONResponse(status_code=401, content={"detail": "Not authenticated"})
    if request.headers.get("HX-Request") == "true":
        return Response(status_code=204, headers={"HX-Redirect": LOGIN_PATH})
    return RedirectResponse(url=LOGIN_PATH, status_code=303)


@app.get("/favicon.ico", include_in_schema=False)
def favicon():
    return Response(status_code=204)


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("nextinbox.main:app", host="0.0.0.0", port=port, reload=True)
