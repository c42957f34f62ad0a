from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.stdio import stdio_server
from mcp.shared.exceptions import McpError

from interfaces.agent.tools import FX_RATE_RESOURCE, USERS_RESOURCE, AgentToolbox, ToolResult

logger = logging.getLogger(__name__)

SERVER_NAME = "fx-transfer-ledger"
PROMPT_NAME = "transfer-assistant"

# Asks the connected client for a value: (message, requested schema) -> (action, content).
AsyncElicitor = Callable[[str, Dict[str, Any]], Awaitable[Tuple[str, Optional[Dict[str, Any]]]]]

RESOURCES = (
    types.Resource(
        uri=USERS_RESOURCE,
        name="users",
        title="User Accounts",
        description="List of all users and their account balances",
        mimeType="application/json",
    ),
    types.Resource(
        uri=FX_RATE_RESOURCE,
        name="fx-rate",
        title="Exchange Rate",
        description="Current AUD to USD exchange rate",
        mimeType="application/json",
    ),
)

TRANSFER_PROMPT = types.Prompt(
    name=PROMPT_NAME,
    title="Transfer Assistant",
    description="Helps guide users through the fund transfer process",
    arguments=[types.PromptArgument(name="userRequest", required=True)],
)


def _failure(message: str, code: int = types.INTERNAL_ERROR) -> McpError:
    return McpError(types.ErrorData(code=code, message=message))


def tool_descriptors(toolbox: AgentToolbox) -> List[types.Tool]:
    return [
        types.Tool(
            name=tool["name"],
            title=tool["title"],
            description=tool["description"],
            inputSchema=tool["inputSchema"],
        )
        for tool in toolbox.list_tools()
    ]


async def call_tool_with_elicitation(
    toolbox: AgentToolbox,
    name: str,
    arguments: Optional[Dict[str, Any]],
    elicit: AsyncElicitor,
) -> ToolResult:
    """
    Run a tool, answering every pending choice through `elicit`.

    The toolbox is synchronous and may block on the ledger, so it runs in
    a worker thread. A client that cannot elicit counts as a cancel.
    """

    result = await asyncio.to_thread(toolbox.call_tool, name, arguments)
    while result.elicitation is not None:
        elicitation = result.elicitation
        try:
            action, content = await elicit(elicitation["message"], elicitation["requestedSchema"])
        except McpError as exc:
            logger.warning("Elicitation failed, cancelling transfer: %s", exc)
            action, content = "cancel", None
        result = await asyncio.to_thread(
            toolbox.resume_elicitation, elicitation["token"], action, content
        )
    return result


def create_mcp_server(toolbox: AgentToolbox) -> Server:
    """Expose the toolbox's tools, resources and prompt as an MCP server."""

    server = Server(SERVER_NAME)

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        return tool_descriptors(toolbox)

    @server.call_tool()
    async def call_tool(name: str, arguments: Dict[str, Any]) -> List[types.TextContent]:
        ctx = server.request_context

        async def elicit(message: str, schema: Dict[str, Any]) -> Tuple[str, Optional[Dict[str, Any]]]:
            answer = await ctx.session.elicit(
                message=message,
                requestedSchema=schema,
                related_request_id=ctx.request_id,
            )
            return answer.action, answer.content

        result = await call_tool_with_elicitation(toolbox, name, arguments, elicit)
        if result.is_error:
            # The server turns a raised exception into an isError result.
            raise RuntimeError(result.text)
        return [types.TextContent(type="text", text=result.text)]

    @server.list_resources()
    async def list_resources() -> List[types.Resource]:
        return list(RESOURCES)

    @server.read_resource()
    async def read_resource(uri: Any) -> List[ReadResourceContents]:
        result = await asyncio.to_thread(toolbox.read_resource, str(uri).rstrip("/"))
        if result.is_error:
            raise _failure(result.text)
        return [ReadResourceContents(content=result.text, mime_type="application/json")]

    @server.list_prompts()
    async def list_prompts() -> List[types.Prompt]:
        return [TRANSFER_PROMPT]

    @server.get_prompt()
    async def get_prompt(name: str, arguments: Optional[Dict[str, str]]) -> types.GetPromptResult:
        if name != PROMPT_NAME:
            raise _failure(f"Unknown prompt: {name}", code=types.INVALID_PARAMS)

        result = await asyncio.to_thread(toolbox.get_prompt, (arguments or {}).get("userRequest", ""))
        if result.is_error:
            raise _failure(result.text)
        return types.GetPromptResult(
            messages=[
                types.PromptMessage(
                    role="assistant",
                    content=types.TextContent(type="text", text=result.text),
                )
            ]
        )

    return server


async def serve_stdio(server: Server) -> None:
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())
