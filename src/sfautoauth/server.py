"""FastAPI application exposing the login flow over HTTP.

Routes:

* ``POST /auth`` -- credentials in a JSON body.
* ``GET /auth`` -- credentials as query parameters.
* ``GET /sfdxauthurl`` -- query parameters, without the login error check.
* ``GET /health`` -- liveness check.

Every credential field can be pinned by the operator through the
environment; see :mod:`sfautoauth.validation`. Successful logins return
``{"success": true, "auth": {...}}``; failures return
``{"success": false, "error": "..."}`` with status 400, 401 or 500 as
carried by the raised :class:`~sfautoauth.exceptions.SfAutoAuthError`.

The login routes are plain ``def`` functions, so FastAPI runs each one in
its worker thread pool; the flow itself is blocking Selenium code.

:func:`run_server` serves the application with :class:`LoginServer`, which
aborts in-flight logins on the first exit signal.
"""

from __future__ import annotations

import logging
import threading
from contextlib import asynccontextmanager
from types import FrameType
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from sfautoauth import __version__
from sfautoauth.browser import browser_session
from sfautoauth.config import ServiceConfig
from sfautoauth.exceptions import SfAutoAuthError
from sfautoauth.flow import CaptureFactory, FlowRegistry, LoginFlow, SessionFactory
from sfautoauth.models import AuthRequest, FailureResponse, SuccessResponse
from sfautoauth.oauth import begin
from sfautoauth.validation import validate_credentials

logger = logging.getLogger(__name__)


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=FailureResponse(error=message).model_dump(),
    )


def create_app(
    config: ServiceConfig,
    session_factory: SessionFactory = browser_session,
    capture_factory: CaptureFactory = begin,
) -> FastAPI:
    """Build the FastAPI application for *config*.

    Args:
        config: Startup configuration, shared by every request.
        session_factory: Browser session context manager factory.
        capture_factory: Callback listener factory.

    Returns:
        The configured :class:`fastapi.FastAPI` instance.
    """
    registry = FlowRegistry(max_concurrent=config.max_concurrent_logins)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        if registry.active:
            logger.info("Shutting down with %d login(s) in flight", registry.active)
        registry.abort_all()

    app = FastAPI(title="sf-auto-oauth", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.registry = registry

    def run_login(auth_request: AuthRequest, check_login_error: Optional[bool] = None) -> dict:
        credentials = validate_credentials(config, auth_request)
        flow = LoginFlow(
            credentials,
            options=config.flow_options(check_login_error),
            browser_options=config.browser_options(),
            oauth=config.oauth_settings(),
            session_factory=session_factory,
            capture_factory=capture_factory,
        )
        fields = registry.run(flow)
        return SuccessResponse(auth=fields.to_payload()).model_dump(by_alias=True)

    @app.exception_handler(SfAutoAuthError)
    async def handle_error(request: Request, exc: SfAutoAuthError) -> JSONResponse:
        if exc.user_facing:
            logger.info("Request failed: %s", exc.message)
        else:
            logger.error("Request failed: %s", exc.message)
        return _failure(exc.status_code, exc.client_message())

    @app.exception_handler(RequestValidationError)
    async def handle_bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("Malformed request: %s", exc.errors())
        return _failure(400, "Invalid request.")

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok", "version": __version__}

    @app.post("/auth")
    def post_auth(body: Optional[AuthRequest] = None) -> dict:
        return run_login(body or AuthRequest())

    @app.get("/auth")
    def get_auth(
        username: Optional[str] = Query(default=None),
        password: Optional[str] = Query(default=None),
        instance_url: Optional[str] = Query(default=None, alias="instanceUrl"),
        domain: Optional[str] = Query(default=None),
    ) -> dict:
        return run_login(
            AuthRequest(
                username=username,
                password=password,
                instance_url=instance_url,
                domain=domain,
            )
        )

    @app.get("/sfdxauthurl")
    def get_sfdx_auth_url(
        username: Optional[str] = Query(default=None),
        password: Optional[str] = Query(default=None),
        instance_url: Optional[str] = Query(default=None, alias="instanceUrl"),
        domain: Optional[str] = Query(default=None),
    ) -> dict:
        return run_login(
            AuthRequest(
                username=username,
                password=password,
                instance_url=instance_url,
                domain=domain,
            ),
            check_login_error=False,
        )

    return app


class LoginServer(uvicorn.Server):
    """uvicorn server that aborts in-flight logins when shutdown is requested.

    uvicorn runs the lifespan shutdown only after open requests have
    drained, and a login parked on the OAuth capture keeps its request open
    until the request deadline. The first exit signal therefore aborts every
    flow held by *registry* before uvicorn starts draining.

    Args:
        config: The uvicorn server configuration.
        registry: The application's flow registry.
    """

    def __init__(self, config: uvicorn.Config, registry: FlowRegistry) -> None:
        super().__init__(config)
        self.registry = registry

    def handle_exit(self, sig: int, frame: Optional[FrameType]) -> None:
        if not self.should_exit:
            logger.info("Shutdown requested, aborting %d login(s) in flight", self.registry.active)
            threading.Thread(
                target=self.registry.abort_all, name="abort-logins", daemon=True
            ).start()
        super().handle_exit(sig, frame)


def run_server(config: ServiceConfig) -> None:
    """Serve the application for *config* until an exit signal arrives."""
    app = create_app(config)
    server = LoginServer(
        uvicorn.Config(app, host=config.host, port=config.port, log_config=None),
        registry=app.state.registry,
    )
    server.run()
