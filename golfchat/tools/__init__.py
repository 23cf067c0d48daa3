"""Tools for the golf concierge assistant."""

from golfchat.tools.registry import ToolArgumentError, ToolsRegistry

__all__ = ["ToolArgumentError", "ToolsRegistry"]
