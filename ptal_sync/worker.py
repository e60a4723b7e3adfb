"""PTAL sync service entry point.

Wires configuration, database, remote clients and the synchronization engine
together, then runs the periodic sweep and the webhook server until a
shutdown signal arrives.
"""

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from datetime import UTC, datetime
from typing import Any

import uvicorn

from ptal_sync.config import Config, ConfigurationLoader
from ptal_sync.database import (
    DatabaseConfig,
    DatabaseConnectionManager,
    DatabasePoolConfig,
)
from ptal_sync.discord import DiscordClient, DiscordClientConfig
from ptal_sync.github import (
    AuthProvider,
    GitHubAppAuth,
    GitHubClient,
    GitHubClientConfig,
    TokenAuth,
)
from ptal_sync.ptal import (
    AnnouncementService,
    DiscordChatSurface,
    EventRouter,
    GitHubPullRequestSource,
    KeyedLock,
    Reconciler,
    RecordStore,
    RenderSettings,
    Sweeper,
)
from ptal_sync.server import attach_router, create_app

logger = logging.getLogger(__name__)


class PtalSyncService:
    """Owns every long-lived component of the service.

    Manages the complete lifecycle:
    - Configuration loading and validation
    - Database and remote client connections
    - Sweep loop and webhook server
    - Graceful shutdown and cleanup
    """

    def __init__(self, config_path: str | None = None, config: Config | None = None):
        """Initialize service.

        Args:
            config_path: Optional path to configuration file
            config: Already loaded configuration (takes precedence)
        """
        self.config_path = config_path
        self.config = config

        self.database: DatabaseConnectionManager | None = None
        self.github_client: GitHubClient | None = None
        self.discord_client: DiscordClient | None = None

        self.store: RecordStore | None = None
        self.reconciler: Reconciler | None = None
        self.router: EventRouter | None = None
        self.sweeper: Sweeper | None = None
        self.announcements: AnnouncementService | None = None

        self.app: Any = None
        self.server: uvicorn.Server | None = None

        self.running = False
        self.shutdown_event = asyncio.Event()
        self._tasks: list[asyncio.Task[Any]] = []

        self.stats: dict[str, Any] = {"started_at": None, "last_error": None}

    async def initialize(self) -> None:
        """Initialize service components and connections."""
        logger.info("Initializing PTAL sync service...")

        try:
            self._load_configuration()
            await self._initialize_database()
            self._initialize_clients()
            self._initialize_engine()
            self._initialize_server()

            self.stats["started_at"] = datetime.now(UTC)
            logger.info("PTAL sync service initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize PTAL sync service: {e}")
            await self.cleanup()
            raise

    def _load_configuration(self) -> None:
        if self.config is not None:
            return

        loader = ConfigurationLoader()
        if self.config_path:
            self.config = loader.load_from_file(self.config_path)
        else:
            self.config = loader.auto_load()

        logger.info(
            f"Configuration loaded ({self.config.system.environment}), "
            f"sweep interval {self.config.ptal.sweep_interval_seconds}s"
        )

    async def _initialize_database(self) -> None:
        if not self.config:
            raise RuntimeError("Configuration not loaded")

        db = self.config.database
        database_config = DatabaseConfig(
            database_url=db.url,
            pool=DatabasePoolConfig(
                pool_size=db.pool_size,
                max_overflow=db.max_overflow,
                pool_timeout=db.pool_timeout,
                pool_recycle=db.pool_recycle,
            ),
            echo_sql=db.echo,
        )
        self.database = DatabaseConnectionManager(database_config)

        if not await self.database.health_check():
            raise RuntimeError("Database is not reachable")

        logger.info("Database connection initialized")

    def _build_github_auth(self) -> AuthProvider:
        if not self.config:
            raise RuntimeError("Configuration not loaded")

        github = self.config.github
        if github.token:
            return TokenAuth(github.token)

        return GitHubAppAuth(
            app_id=github.app_id or "",
            private_key=github.private_key or "",
            installation_id=github.installation_id or "",
            base_url=github.base_url,
            timeout=github.timeout,
        )

    def _initialize_clients(self) -> None:
        if not self.config:
            raise RuntimeError("Configuration not loaded")

        github = self.config.github
        self.github_client = GitHubClient(
            auth=self._build_github_auth(),
            config=GitHubClientConfig(
                base_url=github.base_url,
                timeout=github.timeout,
                max_retries=github.max_retries,
            ),
        )

        discord = self.config.discord
        self.discord_client = DiscordClient(
            DiscordClientConfig(
                bot_token=discord.bot_token,
                base_url=discord.base_url,
                timeout=discord.timeout,
                max_retries=discord.max_retries,
            )
        )

        logger.info(
            "Remote clients initialized",
            extra={"github_app_auth": github.uses_app_auth},
        )

    def _initialize_engine(self) -> None:
        if not self.config or not self.database:
            raise RuntimeError("Required components not initialized")
        if not self.github_client or not self.discord_client:
            raise RuntimeError("Remote clients not initialized")

        ptal = self.config.ptal
        settings = RenderSettings(
            embed_color=self.config.discord.embed_color,
            announcement_roles=dict(self.config.discord.announcement_roles),
            display_bot_reviews=ptal.display_bot_reviews,
        )
        pull_requests = GitHubPullRequestSource(self.github_client)
        chat = DiscordChatSurface(self.discord_client)

        self.store = RecordStore(self.database)
        self.reconciler = Reconciler(
            store=self.store,
            pull_requests=pull_requests,
            chat=chat,
            settings=settings,
            locks=KeyedLock(),
            remote_timeout=ptal.remote_timeout_seconds,
        )
        self.router = EventRouter(
            self.store,
            self.reconciler,
            max_concurrency=ptal.max_concurrent_reconciliations,
        )
        self.sweeper = Sweeper(
            self.store,
            self.reconciler,
            interval_seconds=ptal.sweep_interval_seconds,
            max_concurrency=ptal.max_concurrent_reconciliations,
        )
        self.announcements = AnnouncementService(
            store=self.store,
            pull_requests=pull_requests,
            chat=chat,
            settings=settings,
            allowed_owners=self.config.github.allowed_owners,
            remote_timeout=ptal.remote_timeout_seconds,
        )

        logger.info("Synchronization engine created")

    def _initialize_server(self) -> None:
        if not self.config or not self.database:
            raise RuntimeError("Required components not initialized")

        server_config = self.config.server
        self.app = create_app(
            database=self.database,
            webhook_secret=self.config.github.webhook_secret,
            webhook_path=server_config.webhook_path,
            delivery_cache_size=server_config.delivery_cache_size,
        )
        self.server = uvicorn.Server(
            uvicorn.Config(
                self.app,
                host=server_config.host,
                port=server_config.port,
                log_config=None,
                lifespan="off",
            )
        )

    async def run(self) -> None:
        """Run the sweep loop and the webhook server until shutdown."""
        if not self.sweeper or not self.router or not self.server:
            raise RuntimeError("Service not initialized. Call initialize() first.")

        self.running = True
        logger.info("Starting PTAL sync service...")

        self._setup_signal_handlers()

        try:
            attach_router(self.app, self.router)
            server_task = asyncio.create_task(self.server.serve())
            # uvicorn handles SIGINT/SIGTERM itself while serving
            server_task.add_done_callback(lambda _: self.shutdown_event.set())
            self._tasks = [
                asyncio.create_task(self.sweeper.run(self.shutdown_event)),
                server_task,
            ]

            await self.shutdown_event.wait()

        except asyncio.CancelledError:
            logger.info("Service cancelled")
        except Exception as e:
            logger.error(f"Service error: {e}")
            self.stats["last_error"] = str(e)
        finally:
            self.running = False
            self.server.should_exit = True

            for task in self._tasks:
                if not task.done():
                    task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

            logger.info("PTAL sync service stopped")

    def _setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""

        def signal_handler(sig: int, frame: Any) -> None:
            logger.info(f"Received signal {sig}, initiating shutdown...")
            self.shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def shutdown(self) -> None:
        """Initiate graceful shutdown."""
        logger.info("Shutting down PTAL sync service...")
        self.shutdown_event.set()

    async def cleanup(self) -> None:
        """Clean up resources."""
        try:
            if self.github_client:
                await self.github_client.close()

            if self.discord_client:
                await self.discord_client.close()

            if self.database:
                await self.database.close()

            logger.info("Cleanup completed")

        except Exception as e:
            logger.error(f"Error during cleanup: {e}")

    async def get_health_status(self) -> dict[str, Any]:
        """Get service health status."""
        health: dict[str, Any] = {
            "healthy": True,
            "service": {"running": self.running, "stats": self.stats},
            "components": {},
        }

        if self.database:
            database_ok = await self.database.health_check()
            health["components"]["database"] = {"healthy": database_ok}
            if not database_ok:
                health["healthy"] = False

        if self.sweeper:
            health["components"]["sweeper"] = dict(self.sweeper.stats)

        if self.store and health["components"].get("database", {}).get("healthy"):
            health["components"]["records"] = await self.store.count()

        return health


async def main() -> None:
    """Main entry point for the PTAL sync service."""
    parser = argparse.ArgumentParser(description="PTAL sync service")
    parser.add_argument("--config", help="Configuration file path")
    parser.add_argument("--log-level", default=None, help="Log level")

    args = parser.parse_args()

    service = PtalSyncService(config_path=args.config)

    # Log level from the command line wins over the configured one
    logging.basicConfig(
        level=getattr(logging, (args.log_level or "INFO").upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        await service.initialize()
        if not args.log_level and service.config:
            logging.getLogger().setLevel(service.config.system.log_level.value)
        await service.run()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Service failed: {e}")
        sys.exit(1)
    finally:
        await service.cleanup()


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
