import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

import auth_routes
import bootcamps
import courses
import reviews
import users
from auth import AuthService
from config import API_PREFIX, Settings, get_settings
from database import Store, open_store
from errors import DevCamperError
from geocoder import Geocoder, MapQuestGeocoder
from guards import AuthGuard
from logger import get_logger, setup_logging
from mailer import Mailer, SmtpMailer
from security import TokenIssuer

logger = get_logger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _validation_message(exc: RequestValidationError) -> str:
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path"))
        messages.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return ", ".join(messages) or "Invalid request"


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[Store] = None,
    mailer: Optional[Mailer] = None,
    geocoder: Optional[Geocoder] = None,
) -> FastAPI:
    settings = settings or get_settings()
    store = store or open_store(settings)
    mailer = mailer or SmtpMailer.from_settings(settings)
    geocoder = geocoder or MapQuestGeocoder.from_settings(settings)
    tokens = TokenIssuer.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        Path(settings.file_upload_path).mkdir(parents=True, exist_ok=True)
        await store.connect()
        logger.info("Server started", environment=settings.environment, port=settings.port)
        yield
        await store.close()

    app = FastAPI(title="DevCamper API", lifespan=lifespan)

    app.state.settings = settings
    app.state.store = store
    app.state.geocoder = geocoder
    app.state.guard = AuthGuard(store, tokens)
    app.state.auth_service = AuthService(store, settings, tokens, mailer)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if not settings.is_production:

        @app.middleware("http")
        async def log_requests(request: Request, call_next):
            started = time.perf_counter()
            response = await call_next(request)
            logger.info(
                "Request handled",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )
            return response

    @app.exception_handler(DevCamperError)
    async def devcamper_error_handler(request: Request, exc: DevCamperError):
        return _error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error(400, _validation_message(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def server_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error", path=request.url.path)
        return _error(500, "Server Error")

    for module in (auth_routes, bootcamps, courses, reviews, users):
        app.include_router(module.router, prefix=API_PREFIX)

    app.mount("/uploads", StaticFiles(directory=settings.file_upload_path, check_dir=False), name="uploads")

    @app.get("/")
    def read_root():
        return {"message": "DevCamper API"}

    return app


settings = get_settings()
setup_logging(settings.log_level, settings.log_json)
app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)
