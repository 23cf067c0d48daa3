"""Real-time golf web search tool backed by Perplexity."""

from pydantic import Field

from golfchat.clients.perplexity import PerplexityClient
from golfchat.tools.base import ToolDefinition, ToolInput, ToolResult


class WebSearchInput(ToolInput):
    """Input schema for the web search tool."""

    query: str = Field(
        ...,
        min_length=2,
        description="The search query for golf information",
        examples=[
            "current green fees at Valderrama golf course",
            "best golf courses Costa del Sol reviews",
            "weather forecast Marbella golf this week",
        ],
    )


def create_web_search_tool(search_client: PerplexityClient) -> ToolDefinition:
    async def web_search_handler(params: WebSearchInput) -> ToolResult:
        result = await search_client.search(params.query)
        return ToolResult.ok(
            "web_search_golf",
            {"source": "perplexity_web_search", "query": params.query, "result": result},
        )

    return ToolDefinition(
        name="web_search_golf",
        description=(
            "Search the web for real-time golf information: current prices, latest reviews, weather forecasts, "
            "course conditions and recent news. Use this for anything that needs to be up to date; "
            "use search_golf_courses to find courses that can be booked."
        ),
        input_schema_class=WebSearchInput,
        handler=web_search_handler,
        status_message="Searching for latest golf information...",
    )
