"""
OAuth redirect target.

A small FastAPI app served on the redirect URI. It hands the authorization
response back to the waiting handshake through both delivery channels: it
persists the payload under the fallback storage key and posts it on the
message channel.
"""

import asyncio
import json
import logging
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from ..config.settings import ExporterConfig
from .handshake import CALLBACK_STORAGE_KEY
from .messages import MessageChannel, WindowMessage
from .storage import StorageBackend

logger = logging.getLogger(__name__)

CALLBACK_PAGE = """<!doctype html>
<html>
  <head><title>{title}</title></head>
  <body>
    <p>{message}</p>
    <p>You can close this window.</p>
  </body>
</html>
"""


class CallbackPayload(BaseModel):
    """What the redirect target delivers to the waiting handshake."""
    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None


def create_callback_app(
    callback_path: str,
    redirect_origin: str,
    messages: MessageChannel,
    storage: StorageBackend,
    on_delivered: Optional[Callable[[], None]] = None,
) -> FastAPI:
    """Create the redirect target application.

    Args:
        callback_path: Path component of the redirect URI
        redirect_origin: Origin stamped on posted messages
        messages: Channel the handshake coordinator listens on
        storage: Storage for the fallback payload
        on_delivered: Called once the payload has been handed over
            (the authorization window is then considered closed)

    Returns:
        FastAPI application
    """
    app = FastAPI(
        title="Dataset Exporter OAuth Callback",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.get("/health")
    async def health():
        return {"status": "healthy", "listeners": messages.listener_count}

    @app.get(callback_path, response_class=HTMLResponse)
    async def oauth_callback(
        code: Optional[str] = None,
        state: Optional[str] = None,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ):
        if error and error_description:
            error = f"{error}: {error_description}"

        payload = CallbackPayload(code=code, state=state, error=error)
        data = payload.model_dump(exclude_none=True)

        # Persist first so the fallback is in place if the message is missed
        await storage.set(CALLBACK_STORAGE_KEY, json.dumps(data))
        delivered_to = messages.post(WindowMessage(origin=redirect_origin, data=data))
        logger.info(f"OAuth callback received, delivered to {delivered_to} listener(s)")

        if on_delivered is not None:
            on_delivered()

        if error:
            return HTMLResponse(
                CALLBACK_PAGE.format(title="Authorization failed", message="Authorization failed."),
                status_code=400,
            )
        return HTMLResponse(
            CALLBACK_PAGE.format(title="Authorization complete", message="Authorization complete.")
        )

    return app


class CallbackServer:
    """Serves the redirect target with uvicorn in the running event loop."""

    def __init__(
        self,
        config: ExporterConfig,
        messages: MessageChannel,
        storage: StorageBackend,
        on_delivered: Optional[Callable[[], None]] = None,
    ):
        self.config = config
        self.app = create_callback_app(
            callback_path=config.callback_path,
            redirect_origin=config.oauth.redirect_origin,
            messages=messages,
            storage=storage,
            on_delivered=on_delivered,
        )
        self.server: Optional[uvicorn.Server] = None
        self._server_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Start the callback server in the background."""
        if self._server_task is not None:
            logger.warning("Callback server already running")
            return

        host = self.config.callback_host
        port = self.config.callback_port

        server_config = uvicorn.Config(
            app=self.app,
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
            loop="asyncio",
        )
        self.server = uvicorn.Server(server_config)
        self._server_task = asyncio.create_task(self.server.serve())

        logger.info(f"OAuth callback server listening on http://{host}:{port}{self.config.callback_path}")

    async def stop(self) -> None:
        """Stop the callback server gracefully."""
        if self.server is None:
            return

        self.server.should_exit = True

        if self._server_task:
            try:
                await asyncio.wait_for(self._server_task, timeout=10.0)
            except asyncio.TimeoutError:
                logger.warning("Callback server shutdown timed out, cancelling task")
                self._server_task.cancel()
                try:
                    await self._server_task
                except asyncio.CancelledError:
                    pass

        self.server = None
        self._server_task = None
        logger.info("OAuth callback server stopped")
