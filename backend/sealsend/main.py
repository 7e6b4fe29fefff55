from __future__ import annotations

from datetime import timedelta

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse

from sealsend.api.routes.auth import router as auth_router
from sealsend.api.routes.files import router as files_router
from sealsend.api.routes.users import router as users_router
from sealsend.core.config import Settings, get_settings
from sealsend.core.errors import SealSendError, Unauthorized
from sealsend.core.log import configure_logging
from sealsend.services.authenticator import Authenticator
from sealsend.services.transfer import TransferService
from sealsend.storage.authority import StorageAuthority


async def _sealsend_error_handler(request: Request, exc: SealSendError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors(), custom_encoder={bytes: lambda b: "<bytes>"})},
    )


def create_app(settings: Settings | None = None, storage: StorageAuthority | None = None) -> FastAPI:
    """
    Build the application. The storage authority is created here (or passed
    in) and owned by the app; services receive it explicitly.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    if storage is None:
        storage = StorageAuthority.from_settings(settings)

    app = FastAPI(title=settings.app_name, version="0.0.1")
    app.state.settings = settings
    app.state.storage = storage
    app.state.authenticator = Authenticator(
        storage,
        session_ttl=timedelta(hours=settings.session_ttl_hours),
        challenge_ttl=timedelta(seconds=settings.challenge_ttl_seconds),
    )
    app.state.transfer = TransferService(
        storage,
        registration_token=settings.registration_token,
        max_upload_bytes=settings.max_upload_bytes,
    )

    app.add_exception_handler(SealSendError, _sealsend_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(files_router)

    @app.get("/ping", response_class=PlainTextResponse)
    def ping():
        return "pong"

    return app
