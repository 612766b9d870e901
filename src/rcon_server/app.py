"""Litestar application factory and CLI entry point."""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from litestar import Litestar, Request, Response
from litestar.datastructures import State
from litestar.di import Provide
from litestar.exceptions import HTTPException
from litestar.middleware import DefineMiddleware

from rcon_server.config import ConfigLoader, Settings
from rcon_server.controllers.command import CommandController
from rcon_server.controllers.health import HealthController
from rcon_server.controllers.server import ServerController
from rcon_server.dao.command_dao import CommandDAO
from rcon_server.middleware.timeout import TimeoutMiddleware
from rcon_server.resources.auth import AuthResource
from rcon_server.resources.command import CommandResource
from rcon_server.resources.health import HealthResource
from rcon_server.resources.server import ServerResource
from rcon_server.services.broadcast_service import BroadcastService
from rcon_server.services.command_service import CommandService
from rcon_server.services.registry_service import RegistryService
from rcon_server.services.sweeper_service import LifecycleSweeper
from rcon_server.utils.cache import PendingCache
from rcon_server.utils.db import Database
from rcon_server.utils.logging import configure_logging

logger = structlog.get_logger(__name__)


class AppFactory:
    """Builds and configures the Litestar application. All methods are static."""

    @staticmethod
    def _build(settings: Settings) -> State:
        """Construct the full object graph once.

        servers file → registry ─┬→ AuthResource
                                 ├→ ServerResource
        pool → command_dao ──────┼→ broadcast_service ─┐
        pending_cache ───────────┴→ command_service ←──┘ → CommandResource
        command_dao + pending_cache → sweeper (started in lifespan)
        Database.ping → HealthResource
        """
        configure_logging(settings.log_level, json=settings.log_json)
        pool = Database.init(settings.database_url)
        registry = RegistryService(settings.servers_file)
        pending_cache = PendingCache(
            ttl_seconds=settings.pending_cache_ttl_ms / 1000,
            max_entries=settings.pending_cache_max_entries,
        )
        command_dao = CommandDAO(pool)
        broadcast_service = BroadcastService(command_dao, registry, pending_cache)
        command_service = CommandService(
            command_dao,
            registry,
            pending_cache,
            broadcast_service,
            expiry_hours=settings.command_expiry_hours,
            max_expiry_hours=settings.max_expiry_hours,
            bulk_max=settings.bulk_max_commands,
            list_max_limit=settings.list_max_limit,
        )
        sweeper = LifecycleSweeper(
            command_dao,
            pending_cache,
            interval_minutes=settings.cleanup_interval_minutes,
        )
        return State({
            "settings": settings,
            "health": HealthResource(ping=Database.ping),
            "auth": AuthResource(
                master_token=settings.master_token, registry=registry,
            ),
            "command": CommandResource(command_service=command_service),
            "server": ServerResource(registry=registry),
            "sweeper": sweeper,
        })

    @staticmethod
    @asynccontextmanager
    async def _lifespan(app: Litestar) -> AsyncIterator[None]:
        """Create tables and start the sweeper; stop both on shutdown."""
        await Database.create_tables()
        settings: Settings = app.state.settings
        sweeper: LifecycleSweeper = app.state.sweeper
        if settings.sweeper_enabled:
            sweeper.start()
        logger.info("server_started")
        try:
            yield
        finally:
            sweeper.shutdown()
            await Database.close()
            logger.info("server_stopped")

    @staticmethod
    def handle_http_error(
        request: Request[object, object, State], error: HTTPException,
    ) -> Response[dict[str, object]]:
        """Render HTTP errors as ``{"error": detail}``."""
        return Response(
            content={"error": error.detail},
            status_code=error.status_code,
        )

    @staticmethod
    def handle_internal_error(
        request: Request[object, object, State], error: Exception,
    ) -> Response[dict[str, object]]:
        """Log unexpected failures and hide their details from the caller."""
        logger.error(
            "unhandled_error",
            method=request.method,
            path=request.url.path,
            exc_info=error,
        )
        return Response(
            content={"error": "Internal server error"},
            status_code=500,
        )

    @staticmethod
    def provide_auth(state: State) -> AuthResource:
        """Provide the pre-built AuthResource from app state."""
        auth_resource: AuthResource = state.auth
        return auth_resource

    @staticmethod
    def provide_health(state: State) -> HealthResource:
        """Provide the pre-built HealthResource from app state."""
        health_resource: HealthResource = state.health
        return health_resource

    @staticmethod
    def provide_command(state: State) -> CommandResource:
        """Provide the pre-built CommandResource from app state."""
        command_resource: CommandResource = state.command
        return command_resource

    @staticmethod
    def provide_server(state: State) -> ServerResource:
        """Provide the pre-built ServerResource from app state."""
        server_resource: ServerResource = state.server
        return server_resource

    @staticmethod
    def create_app(settings: Settings | None = None) -> Litestar:
        """Create and configure the Litestar application."""
        if settings is None:
            settings = ConfigLoader.load_settings()
        return Litestar(
            route_handlers=[HealthController, CommandController, ServerController],
            state=AppFactory._build(settings),
            lifespan=[AppFactory._lifespan],
            middleware=[
                DefineMiddleware(
                    TimeoutMiddleware, timeout=settings.request_timeout_seconds,
                ),
            ],
            exception_handlers={
                HTTPException: AppFactory.handle_http_error,
                Exception: AppFactory.handle_internal_error,
            },
            dependencies={
                "auth_resource": Provide(AppFactory.provide_auth, sync_to_thread=False),
                "health_resource": Provide(AppFactory.provide_health, sync_to_thread=False),
                "command_resource": Provide(AppFactory.provide_command, sync_to_thread=False),
                "server_resource": Provide(AppFactory.provide_server, sync_to_thread=False),
            },
        )


# Public alias so conftest / uvicorn can call create_app() without knowing AppFactory.
create_app = AppFactory.create_app


class CLI:
    """Command-line interface for rcon-server."""

    @staticmethod
    def _build_parser() -> argparse.ArgumentParser:
        """Build the CLI argument parser."""
        parser = argparse.ArgumentParser(
            prog="rcon-server", description="RCON command queue server",
        )
        subparsers = parser.add_subparsers(dest="command")

        run_parser = subparsers.add_parser("run", help="Start the server")
        run_parser.add_argument("--host", default="0.0.0.0")
        run_parser.add_argument("--port", type=int, default=3000)
        run_parser.add_argument("--reload", action="store_true", help="Auto-reload on file changes")

        subparsers.add_parser("sweep", help="Expire and purge commands once, then exit")

        return parser

    @staticmethod
    async def _sweep_once(settings: Settings) -> None:
        """Run one sweeper cycle against the configured database."""
        configure_logging(settings.log_level, json=settings.log_json)
        pool = Database.init(settings.database_url)
        try:
            await Database.create_tables()
            sweeper = LifecycleSweeper(CommandDAO(pool), PendingCache())
            result = await sweeper.run_once()
        finally:
            await Database.close()
        print(
            f"expired={result.expired} purged={result.purged} "
            f"cutoff={result.cutoff.isoformat()}",
        )

    @staticmethod
    def main(argv: list[str] | None = None) -> None:
        """CLI entry point. Catches all exceptions and exits cleanly."""
        parser = CLI._build_parser()
        args = parser.parse_args(argv)

        if args.command is None:
            parser.print_help()
            sys.exit(1)

        try:
            if args.command == "run":
                import uvicorn

                uvicorn.run(
                    "rcon_server.app:create_app",
                    factory=True,
                    host=args.host,
                    port=args.port,
                    reload=args.reload,
                )
            elif args.command == "sweep":
                asyncio.run(CLI._sweep_once(ConfigLoader.load_settings()))
        except KeyboardInterrupt:
            pass
        except Exception as error:
            print(f"Error: {error}", file=sys.stderr)
            sys.exit(1)


if __name__ == "__main__":
    CLI.main()
