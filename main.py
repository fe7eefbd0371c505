"""
Main application entry point
Initializes the mapping service, starts the proxies and the control API
"""

import argparse
import sys
from contextlib import asynccontextmanager
from typing import Callable, Optional

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mimic import __version__
from mimic.core.config import APIConfig, ApplicationConfig
from mimic.core.logging import configure_logging
from mimic.mappings.service import MappingService
from mimic.mappings.storage import MappingStore
from mimic.interception.decision import InterceptDecisionEngine
from mimic.interception.proxy_server import ProxyServer
from mimic.interception.http_proxy import HTTPProxyServer
from mimic.api.mapping_routes import router as mapping_router
from mimic.api.proxy_routes import router as proxy_router
from mimic.cli.mapping_manager import (
    list_mappings_command,
    add_mapping_command,
    set_content_command,
    show_mapping_command,
    delete_mapping_command
)

logger = structlog.get_logger()


def create_app(config_factory: Callable[[], ApplicationConfig] = ApplicationConfig) -> FastAPI:
    """
    Build the FastAPI application

    Args:
        config_factory: Returns the configuration used by the lifespan
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan management"""

        # Startup
        config = config_factory()
        configure_logging(config.logging.log_level, str(config.logging.log_dir))
        logger.info("Starting Mimic Proxy", version=__version__)

        # StorageCorrupt is fatal: never start on an unreadable index
        service = MappingService(MappingStore(config.storage.storage_dir))
        loaded = service.initialize()
        logger.info("Mappings loaded", count=loaded, storage_dir=str(config.storage.storage_dir))

        engine = InterceptDecisionEngine(service)
        proxy_server = ProxyServer(config, engine)
        http_proxy = HTTPProxyServer(config, engine)

        app.state.config = config
        app.state.mapping_service = service
        app.state.decision_engine = engine
        app.state.proxy_server = proxy_server
        app.state.http_proxy = http_proxy

        if config.proxy.proxy_enabled:
            try:
                await proxy_server.start_async()
            except Exception as e:
                logger.error("Failed to start MITM proxy", error=str(e))

        if config.http_proxy.http_proxy_enabled:
            try:
                await http_proxy.start()
            except OSError as e:
                logger.error("Failed to start HTTP proxy", error=str(e))

        logger.info("Mimic Proxy initialized successfully")

        yield

        # Shutdown
        logger.info("Shutting down Mimic Proxy")

        if proxy_server.is_running():
            await proxy_server.stop_async()
        await http_proxy.stop()

        logger.info("Shutdown complete")

    app = FastAPI(
        title="Mimic Proxy",
        description="Serve canned content for registered URL patterns through an intercepting proxy",
        version=__version__,
        lifespan=lifespan
    )

    # Configure CORS - Allow the editor frontend to access the API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=APIConfig().cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(mapping_router)
    app.include_router(proxy_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring"""
        service: Optional[MappingService] = getattr(app.state, "mapping_service", None)
        proxy_server = getattr(app.state, "proxy_server", None)
        return {
            "status": "ok" if service is not None else "starting",
            "version": __version__,
            "mappings": len(service) if service is not None else 0,
            "mitm_proxy": proxy_server.is_running() if proxy_server else False
        }

    return app


app = create_app()


def parse_arguments():
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Mimic Proxy",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                                   Start the API and proxies
  python main.py --list-mappings                   Show registered mappings
  python main.py --add-pattern 'https://a.com/x'   Register an exact URL or glob
  python main.py --add-regex '^https://cdn\\..*'   Register a regular expression
  python main.py --set-content ID page.html        Attach content to a mapping
  python main.py --show-mapping ID                 Print a mapping and its content
  python main.py --delete-mapping ID               Remove a mapping
        """
    )

    # Mapping management
    parser.add_argument(
        "--list-mappings",
        action="store_true",
        help="List all registered mappings"
    )

    parser.add_argument(
        "--add-pattern",
        metavar="PATTERN",
        help="Register an exact URL or glob pattern"
    )

    parser.add_argument(
        "--add-regex",
        metavar="REGEX",
        help="Register a regular expression"
    )

    parser.add_argument(
        "--set-content",
        nargs=2,
        metavar=("ID", "FILE"),
        help="Set a mapping's content from a file"
    )

    parser.add_argument(
        "--show-mapping",
        metavar="ID",
        help="Show a mapping including its content"
    )

    parser.add_argument(
        "--delete-mapping",
        metavar="ID",
        help="Delete a mapping"
    )

    # Server Options
    parser.add_argument(
        "--host",
        default=None,
        help="Host to bind the API server (default: from config, 127.0.0.1)"
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind the API server (default: from config, 8000)"
    )

    parser.add_argument(
        "--no-reload",
        action="store_true",
        help="Disable hot reload (useful for production)"
    )

    return parser.parse_args()


def run_cli_command(args) -> Optional[int]:
    """Execute CLI commands"""
    if args.list_mappings:
        return list_mappings_command()
    elif args.add_pattern or args.add_regex:
        return add_mapping_command(pattern=args.add_pattern, regex_pattern=args.add_regex)
    elif args.set_content:
        return set_content_command(*args.set_content)
    elif args.show_mapping:
        return show_mapping_command(args.show_mapping)
    elif args.delete_mapping:
        return delete_mapping_command(args.delete_mapping)

    return None


if __name__ == "__main__":
    # Parse command line arguments
    args = parse_arguments()

    # Check if this is a CLI command
    exit_code = run_cli_command(args)
    if exit_code is not None:
        sys.exit(exit_code)

    # Otherwise, run the web server
    api_config = ApplicationConfig().api
    uvicorn.run(
        "main:app",
        host=args.host or api_config.api_host,
        port=args.port or api_config.api_port,
        reload=not args.no_reload,
        log_config=None  # Use our custom logging configuration
    )
