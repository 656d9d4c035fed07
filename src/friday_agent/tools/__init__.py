from friday_agent.tools.base import (
    ToolContext,
    ToolKind,
    ToolRegistry,
    ToolRequest,
    ToolResult,
    build_tool_catalog,
)
from friday_agent.tools.dispatcher import ToolDispatcher, tool_result_block

__all__ = [
    "ToolContext",
    "ToolDispatcher",
    "ToolKind",
    "ToolRegistry",
    "ToolRequest",
    "ToolResult",
    "build_tool_catalog",
    "tool_result_block",
]
