import asyncio
import logging

from config import configure_logging, load_settings
from infrastructure.factory import build_backends, build_orchestrator
from interfaces.agent.mcp_server import create_mcp_server, serve_stdio
from interfaces.agent.tools import AgentToolbox

logger = logging.getLogger(__name__)


def main() -> None:
    settings = load_settings()
    # Logs go to stderr; stdout carries the protocol.
    configure_logging(settings.log_level)

    backends = build_backends(settings)
    toolbox = AgentToolbox(
        build_orchestrator(settings, backends),
        backends.ledger,
        backends.rate_source,
    )
    logger.info("MCP server running on stdio")
    asyncio.run(serve_stdio(create_mcp_server(toolbox)))


if __name__ == "__main__":
    main()
