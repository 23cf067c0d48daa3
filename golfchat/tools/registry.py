"""Tools registry for declaring and dispatching assistant tools."""

import asyncio
import json
from typing import Any

from pydantic import BaseModel, ValidationError

from golfchat.clients.golfnow import BookingProvider
from golfchat.clients.perplexity import PerplexityClient
from golfchat.models.llm import LLMToolDefinition
from golfchat.services.bookings import BookingLedger
from golfchat.tools.base import ToolDefinition, ToolResult
from golfchat.tools.booking import create_book_tee_time_tool
from golfchat.tools.courses import create_get_tee_times_tool, create_search_courses_tool
from golfchat.tools.web_search import create_web_search_tool
from golfchat.utils.logging import get_logger

logger = get_logger(__name__)


class ToolArgumentError(ValueError):
    """The model's arguments could not be decoded into the tool's input model."""


class ToolsRegistry:
    """Registry of the tools the assistant may call.

    Each tool owns a pydantic input model, so the registry is a tagged union
    keyed by tool name: decoding the raw argument JSON into the named tool's
    model is the validation step. ``execute`` never raises; every failure
    becomes an error ToolResult the model can react to.
    """

    def __init__(
        self,
        booking_provider: BookingProvider,
        booking_ledger: BookingLedger,
        search_client: PerplexityClient | None = None,
        tool_timeout_seconds: float = 30.0,
        settle_timeout_seconds: float = 120.0,
    ):
        """Initialize tools registry with service dependencies.

        Args:
            booking_provider: Course search, availability and booking collaborator
            booking_ledger: Local booking mirror
            search_client: Perplexity client; enables web search when given
            tool_timeout_seconds: Wall-clock limit for one tool dispatch
            settle_timeout_seconds: Further wait for a side-effecting call that outlived its dispatch limit
        """
        self.booking_provider = booking_provider
        self.booking_ledger = booking_ledger
        self.search_client = search_client
        self.tool_timeout_seconds = tool_timeout_seconds
        self.settle_timeout_seconds = settle_timeout_seconds
        self._tools: dict[str, ToolDefinition] = {}
        self._side_effects: set[asyncio.Future] = set()
        self._register_default_tools()

    def _register_default_tools(self) -> None:
        """Register the course search and booking tools."""
        tools = [
            create_search_courses_tool(self.booking_provider),
            create_get_tee_times_tool(self.booking_provider),
            create_book_tee_time_tool(self.booking_provider, self.booking_ledger),
        ]
        if self.search_client is not None:
            tools.insert(0, create_web_search_tool(self.search_client))

        for tool in tools:
            self.register_tool(tool)

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a new tool in the registry."""
        self._tools[tool.name] = tool

    def get_tool_definitions(self) -> list[LLMToolDefinition]:
        """Catalog advertised to the model."""
        return [
            LLMToolDefinition(name=tool.name, description=tool.description, input_schema=tool.get_json_schema())
            for tool in self._tools.values()
        ]

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    def status_message(self, name: str) -> str | None:
        """Progress notice to show while the tool runs."""
        tool = self._tools.get(name)
        return tool.status_message if tool else None

    def parse_arguments(self, name: str, raw_arguments: str | dict[str, Any]) -> BaseModel:
        """Decode raw model arguments into the tool's typed input.

        Raises:
            KeyError: If the tool is unknown
            ToolArgumentError: If the arguments are not valid JSON or fail validation
        """
        tool = self._tools[name]

        if isinstance(raw_arguments, str):
            if not raw_arguments.strip():
                raw_arguments = "{}"
            try:
                arguments = json.loads(raw_arguments)
            except json.JSONDecodeError as e:
                raise ToolArgumentError(f"Arguments for {name} are not valid JSON: {e.msg}") from e
        else:
            arguments = raw_arguments

        if not isinstance(arguments, dict):
            raise ToolArgumentError(f"Arguments for {name} must be a JSON object")

        try:
            return tool.parse_input(arguments)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in err['loc']) or 'input'}: {err['msg']}" for err in e.errors()
            )
            raise ToolArgumentError(f"Invalid arguments for {name}: {problems}") from e

    async def execute(self, name: str, raw_arguments: str | dict[str, Any]) -> ToolResult:
        """Validate arguments and run the named tool.

        Args:
            name: Tool name chosen by the model
            raw_arguments: Argument JSON text (or an already-decoded object)

        Returns:
            The tool's result, or an error result describing what went wrong
        """
        tool = self._tools.get(name)
        if tool is None:
            logger.error(f"Unknown tool requested: {name}")
            return ToolResult.failure(name, f"Unknown tool: {name}")

        try:
            params = self.parse_arguments(name, raw_arguments)
        except ToolArgumentError as e:
            logger.warning(str(e))
            return ToolResult.failure(name, str(e))

        logger.info(f"Executing tool {name}")
        try:
            result = await self._run(tool, params)
        except TimeoutError:
            logger.error(f"Tool {name} timed out after {self.tool_timeout_seconds}s")
            return ToolResult.failure(name, f"{name} did not respond in time, please try again")
        except Exception as e:
            logger.error(f"Tool {name} failed: {e}", exc_info=True)
            return ToolResult.failure(name, str(e) or "Tool execution failed")

        logger.debug(f"Tool {name} returned {result.to_json()[:200]}")
        return result

    async def settle(self, result: ToolResult) -> ToolResult:
        """Wait for a side-effecting call that outlived its dispatch timeout.

        Args:
            result: A result whose ``pending`` task is still running

        Returns:
            The call's own result, or an unresolved result when it does not
            finish within the settle timeout
        """
        if result.pending is None:
            return result

        try:
            return await asyncio.wait_for(asyncio.shield(result.pending), timeout=self.settle_timeout_seconds)
        except TimeoutError:
            logger.error(f"Tool {result.name} still unresolved after {self.settle_timeout_seconds}s more")
            return ToolResult.outcome_unknown(result.name)
        except Exception as e:
            logger.error(f"Tool {result.name} failed: {e}", exc_info=True)
            return ToolResult.failure(result.name, str(e) or "Tool execution failed")

    async def _run(self, tool: ToolDefinition, params: BaseModel) -> ToolResult:
        if not tool.side_effecting:
            return await asyncio.wait_for(tool.handler(params), timeout=self.tool_timeout_seconds)

        # Shielded so neither a timeout nor a cancelled turn aborts a booking already sent
        task = asyncio.ensure_future(tool.handler(params))
        self._side_effects.add(task)
        task.add_done_callback(self._side_effects.discard)
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self.tool_timeout_seconds)
        except TimeoutError:
            logger.warning(f"Tool {tool.name} still running after {self.tool_timeout_seconds}s")
            return ToolResult.still_running(tool.name, task)
