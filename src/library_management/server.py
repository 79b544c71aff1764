"""Library Management MCP Server - FastMCP Implementation

Exposes the library over MCP:
- Resources: catalogue, loans, patron fines, reports, settings and backups
- Tools: borrow, return, renew, reserve, fines, catalogue and account
  maintenance, settings and backup administration

Clients connect over stdio by default, or Streamable HTTP when
``LIBRARY_TRANSPORT=streamable_http``.
"""

import logging
import signal
import sys
from typing import Any

from fastmcp import FastMCP

from .config import ServerConfig, get_config
from .database.session import get_db_manager
from .observability import initialize_observability
from .resources import all_resources
from .tools import all_tools

# stderr for logs, stdout for the MCP protocol
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)

logger = logging.getLogger(__name__)

INSTRUCTIONS = (
    "Library Management MCP Server. Use resources to browse the catalogue, open and "
    "overdue loans, patron fines, reports and settings. Use tools to lend, return, "
    "renew and reserve items, record fine payments, maintain the catalogue and "
    "accounts, change the circulation policy and manage database backups."
)


def create_server(config: ServerConfig | None = None) -> FastMCP:
    """Build a FastMCP instance with every resource and tool registered."""
    config = config or get_config()
    mcp = FastMCP(name=config.server_name, version=config.server_version, instructions=INSTRUCTIONS)

    for resource in all_resources:
        logger.debug("Registering resource: %s with URI: %s", resource["name"], resource["uri"])
        try:
            mcp.resource(
                uri=resource["uri"],
                name=resource["name"],
                description=resource["description"],
                mime_type=resource["mime_type"],
            )(resource["handler"])
        except Exception:
            logger.exception("Failed to register resource %s", resource["name"])
            raise

    logger.info("Registered %d resources", len(all_resources))

    for tool in all_tools:
        logger.debug("Registering tool: %s", tool["name"])
        try:
            mcp.tool(name=tool["name"], description=tool["description"])(tool["handler"])
        except Exception:
            logger.exception("Failed to register tool %s", tool["name"])
            raise

    logger.info("Registered %d tools", len(all_tools))
    return mcp


def configure_logging(config: ServerConfig) -> None:
    if config.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled - verbose protocol logging active")
    else:
        logging.getLogger().setLevel(config.log_level)
        logging.getLogger("fastmcp").setLevel(logging.WARNING)


def prepare_database() -> None:
    """Create missing tables and fail fast when the database is unreachable."""
    manager = get_db_manager()
    manager.init_database()
    if not manager.verify_connection():
        raise RuntimeError("Database connection could not be established")


def run_server(mcp: FastMCP, config: ServerConfig) -> None:
    """Run on the configured transport until interrupted."""

    def signal_handler(signum: int, _frame: Any) -> None:
        logger.info("Received signal %s, initiating shutdown...", signum)
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        if config.transport == "stdio":
            logger.info("MCP Server ready on stdio")
            mcp.run(transport="stdio")
        else:
            logger.info("MCP Server listening on http://%s:%d", config.http_host, config.http_port)
            mcp.run(transport="streamable-http", host=config.http_host, port=config.http_port)
    except Exception:
        logger.exception("Fatal error in MCP server")
        sys.exit(1)
    finally:
        get_db_manager().close()
        logger.info("Shutdown complete")


def main() -> None:
    """Entry point for ``library-management-server``."""
    try:
        config = get_config()
        configure_logging(config)

        logger.info("=" * 60)
        logger.info("Library Management MCP Server")
        logger.info("Version: %s", config.server_version)
        logger.info("Transport: %s", config.transport)
        logger.info("Debug Mode: %s", config.debug)
        logger.info("=" * 60)

        if config.enable_tracing:
            initialize_observability()

        prepare_database()
        run_server(create_server(config), config)

    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception:
        logger.exception("Failed to start MCP server")
        sys.exit(1)


if __name__ == "__main__":
    main()
