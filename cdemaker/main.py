from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from starlette.responses import JSONResponse, Response

from cdemaker.config import AppConfig, load_config
from cdemaker.db import build_engine, build_sessionmaker, init_db
from cdemaker.services.auth import AuthCapability, AuthUnavailableError, get_current_user
from cdemaker.services.providers import ModelClient, get_model_client
from cdemaker.web.routers import compare, projects, reports

APP_NAME = "cde-maker"
log = logging.getLogger("cdemaker")


def _configure_logging(level: str) -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("cdemaker").setLevel(level)


def create_app(
    config: Optional[AppConfig] = None,
    model_client: Optional[ModelClient] = None,
    auth: Optional[AuthCapability] = None,
) -> FastAPI:
    """Build the app. Clients are created once on startup and live on app.state."""
    config = config or load_config()
    _configure_logging(config.log_level)

    app = FastAPI(title=f"{APP_NAME} API")
    app.state.config = config
    app.include_router(projects.router)
    app.include_router(compare.router)
    app.include_router(reports.router)

    @app.on_event("startup")
    async def _startup():
        engine = build_engine(config.db_url)
        await init_db(engine)
        app.state.engine = engine
        app.state.sessionmaker = build_sessionmaker(engine)
        app.state.model_client = model_client or get_model_client(config)
        app.state.auth = auth or AuthCapability.from_config(config)
        log.info("[startup] provider=%s auth=%s routes=%s",
                 app.state.model_client.name, app.state.auth.enabled,
                 sorted(getattr(r, "path", "?") for r in app.router.routes))

    @app.on_event("shutdown")
    async def _shutdown():
        await app.state.model_client.aclose()
        await app.state.auth.aclose()
        await app.state.engine.dispose()

    @app.get("/favicon.ico")
    async def favicon():
        return Response(status_code=204)

    @app.get("/health")
    async def health(request: Request):
        return {"ok": True, "auth": request.app.state.auth.enabled, "provider": request.app.state.model_client.name}

    @app.get("/")
    async def index(request: Request):
        auth_cap: AuthCapability = request.app.state.auth
        try:
            user = await get_current_user(request)
        except AuthUnavailableError as e:
            log.warning("[auth] %s", e)
            return JSONResponse({"error": "Authentication service unavailable"}, status_code=503)
        if auth_cap.enabled and user is None:
            return auth_cap.redirect_to_sign_in(after=str(request.url.path))
        return JSONResponse({"app": APP_NAME, "user": user.id if user else None})

    return app


app = create_app()
