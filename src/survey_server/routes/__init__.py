"""Route registration — mounts the dashboard routers under ``/api/v1``.

The webhook router is mounted at the root because its path is registered
with Meta as-is.
"""

from fastapi import FastAPI

from survey_server.routes.bot import router as bot_router
from survey_server.routes.calls import router as calls_router
from survey_server.routes.sessions import router as sessions_router
from survey_server.routes.webhook import router as webhook_router

API_PREFIX = "/api/v1"


def register_routes(app: FastAPI) -> None:
    """Include all sub-routers."""
    app.include_router(webhook_router)
    app.include_router(sessions_router, prefix=API_PREFIX)
    app.include_router(calls_router, prefix=API_PREFIX)
    app.include_router(bot_router, prefix=API_PREFIX)
