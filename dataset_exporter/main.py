"""
Application wiring for Dataset Exporter.

Builds every component from configuration:
- Encrypted local storage for PKCE secrets and the callback fallback
- OAuth handshake coordinator and its redirect target server
- Dual job poller against the export service
- Hub repository client and dataset publisher
- Workflow orchestrator
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import httpx

from .auth import (
    BrowserWindowOpener,
    CallbackServer,
    EncryptedFileStorage,
    MessageChannel,
    OAuthHandshakeCoordinator,
    PkceStore,
    TokenExchanger,
)
from .config import ConfigValidator, EnvironmentLoader, ExporterConfig
from .exceptions import ConfigurationError, handle_unexpected_error
from .jobs import DualJobPoller
from .publishing import DatasetPublisher, HubRepositoryClient
from .workflow import StatusSink, WorkflowOrchestrator, WorkflowResult

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(config: ExporterConfig) -> None:
    """Log to stdout, and to a file in the storage directory when writable."""
    log_handlers = [logging.StreamHandler(sys.stdout)]
    try:
        log_path = Path(config.storage.path) / "exporter.log"
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_handlers.append(logging.FileHandler(str(log_path)))
    except (OSError, PermissionError):
        # File logging not available, use stdout only
        pass

    logging.basicConfig(
        level=config.log_level.value,
        format=LOG_FORMAT,
        handlers=log_handlers,
    )


class ExporterApp:
    """Owns the components of one exporter process."""

    def __init__(
        self,
        config: Optional[ExporterConfig] = None,
        status_sink: Optional[StatusSink] = None,
    ):
        self.config = config
        self.status_sink = status_sink
        self.http_client: Optional[httpx.AsyncClient] = None
        self.callback_server: Optional[CallbackServer] = None
        self.handshake: Optional[OAuthHandshakeCoordinator] = None
        self.poller: Optional[DualJobPoller] = None
        self.orchestrator: Optional[WorkflowOrchestrator] = None
        self.running = False
        self.logger = logging.getLogger(__name__)

    def initialize(self) -> None:
        """Load and validate configuration, then build all components."""
        try:
            if self.config is None:
                self.config = EnvironmentLoader.load_config()
            setup_logging(self.config)
            self.logger.info("Initializing Dataset Exporter...")

            errors = ConfigValidator.validate_config(self.config)
            if errors:
                raise ConfigurationError(
                    "Invalid configuration: " + "; ".join(errors),
                    context={"errors": errors},
                )

            self._build_components()
            self.logger.info("All components initialized successfully")

        except Exception as e:
            error = handle_unexpected_error(e)
            self.logger.error(f"Failed to initialize application: {error.to_log_string()}")
            raise

    def _build_components(self) -> None:
        config = self.config
        storage = EncryptedFileStorage(Path(config.storage.path), config.storage.encryption_key)
        pkce_store = PkceStore(storage)
        messages = MessageChannel()
        opener = BrowserWindowOpener()

        self.http_client = httpx.AsyncClient(timeout=30.0)

        self.callback_server = CallbackServer(
            config=config,
            messages=messages,
            storage=storage,
            on_delivered=opener.notify_closed,
        )

        exchanger = TokenExchanger(config.oauth, pkce_store, http_client=self.http_client)
        self.handshake = OAuthHandshakeCoordinator(
            config=config.oauth,
            pkce_store=pkce_store,
            exchanger=exchanger,
            messages=messages,
            opener=opener,
            storage=storage,
        )

        self.poller = DualJobPoller(config.export_api, http_client=self.http_client)
        repo_client = HubRepositoryClient(config.oauth.hub_endpoint, http_client=self.http_client)
        publisher = DatasetPublisher(repo_client, config.publish, config.oauth.hub_endpoint)

        self.orchestrator = WorkflowOrchestrator(
            config=config,
            handshake=self.handshake,
            poller=self.poller,
            publisher=publisher,
            repo_client=repo_client,
            status_sink=self.status_sink,
        )

    async def start(self) -> None:
        """Start the redirect target so the handshake can complete."""
        if self.orchestrator is None:
            self.initialize()
        await self.callback_server.start()
        self.running = True

    async def export(
        self,
        dataset_name: str,
        source_url: Optional[str] = None,
        max_retries: Optional[int] = None,
    ) -> WorkflowResult:
        """Run one export to completion or final failure."""
        if not self.running:
            await self.start()
        return await self.orchestrator.run(dataset_name, source_url=source_url, max_retries=max_retries)

    async def stop(self) -> None:
        """Tear down the workflow and release network resources."""
        self.logger.info("Stopping Dataset Exporter...")

        if self.orchestrator is not None:
            self.orchestrator.teardown()

        if self.callback_server is not None:
            try:
                await self.callback_server.stop()
            except Exception as e:
                self.logger.error(f"Error stopping callback server: {e}")

        if self.http_client is not None:
            await self.http_client.aclose()
            self.http_client = None

        self.running = False
        self.logger.info("Dataset Exporter stopped")


async def run_export(
    dataset_name: str,
    source_url: Optional[str] = None,
    max_retries: Optional[int] = None,
    config: Optional[ExporterConfig] = None,
    status_sink: Optional[StatusSink] = None,
) -> WorkflowResult:
    """Run a single export with a fresh application instance."""
    app = ExporterApp(config=config, status_sink=status_sink)
    try:
        app.initialize()
        await app.start()
        return await app.export(dataset_name, source_url=source_url, max_retries=max_retries)
    finally:
        await app.stop()
