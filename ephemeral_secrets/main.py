"""
Main API entrypoint.
"""

import sys
from contextlib import asynccontextmanager
from loguru import logger
from fastapi import FastAPI, APIRouter, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from ephemeral_secrets.command.router import router as command_router
from ephemeral_secrets.config import settings
from ephemeral_secrets.config.router import router as config_router
from ephemeral_secrets.plugin import Plugin
from ephemeral_secrets.secret.router import router as secret_router

logger.remove()
logger.add(sys.stderr, level="DEBUG" if settings.debug else "INFO")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Activate the plugin on startup, deactivate it on shutdown.
    """
    plugin = Plugin.from_settings(settings)
    await plugin.on_activate()
    app.state.plugin = plugin
    try:
        yield
    finally:
        app.state.plugin = None
        await plugin.on_deactivate()


app = FastAPI(default_response_class=ORJSONResponse, lifespan=lifespan)

default_router = APIRouter()
default_router.include_router(secret_router, prefix="/api/v1/secrets", tags=["Secrets"])
default_router.include_router(command_router, prefix="/api/v1/commands", tags=["Commands"])
default_router.include_router(config_router, prefix="/api/v1/config", tags=["Configuration"])
default_router.get("/ping")(lambda: {"message": "pong"})

app.include_router(default_router)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """
    Malformed input is a plain bad request.
    """
    return ORJSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )
