"""HTTP status server with health, readiness and Prometheus endpoints."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from aiohttp import web
from prometheus_client import generate_latest

logger = logging.getLogger(__name__)

DEFAULT_HTTP_PORT = 8080

StatusProvider = Callable[[], dict[str, Any]]


class StatusServer:
    """Serves ``/health``, ``/ready``, ``/live`` and ``/metrics``.

    The status provider returns the service status document; its
    ``running`` flag decides between 200 and 503 on ``/health`` and
    ``/ready``.
    """

    def __init__(self, status_provider: StatusProvider, port: int = DEFAULT_HTTP_PORT) -> None:
        self._status_provider = status_provider
        self.port = port
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None

    @property
    def is_running(self) -> bool:
        return self._runner is not None

    async def _handle_health(self, _request: web.Request) -> web.Response:
        """Handle /health endpoint."""
        status = self._status_provider()
        return web.json_response(status, status=200 if status.get("running") else 503)

    async def _handle_ready(self, _request: web.Request) -> web.Response:
        """Handle /ready endpoint."""
        if not self._status_provider().get("running"):
            return web.json_response({"ready": False, "reason": "not running"}, status=503)
        return web.json_response({"ready": True}, status=200)

    async def _handle_live(self, _request: web.Request) -> web.Response:
        """Handle /live endpoint."""
        return web.json_response({"live": True}, status=200)

    async def _handle_metrics(self, _request: web.Request) -> web.Response:
        """Handle /metrics endpoint (Prometheus format)."""
        return web.Response(body=generate_latest(), content_type="text/plain", charset="utf-8")

    def create_app(self) -> web.Application:
        """Create the aiohttp application."""
        app = web.Application()
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/ready", self._handle_ready)
        app.router.add_get("/live", self._handle_live)
        app.router.add_get("/metrics", self._handle_metrics)
        return app

    async def start(self) -> None:
        """Start listening on ``port``."""
        if self._runner:
            logger.warning("Status server already running")
            return

        self._app = self.create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, "0.0.0.0", self.port)
        await site.start()
        logger.info("Status server started on port %d", self.port)

    async def stop(self) -> None:
        """Stop the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._app = None
            logger.info("Status server stopped")
