"""Tool registry: name lookup, catalog export and the dispatch failure boundary."""

from __future__ import annotations

import json
import time
from typing import Any

from planner_bot.ai.tools.base import Tool, ToolContext, ToolResult
from planner_bot.core.errors import (
    AmbiguousReferenceError,
    NotFoundError,
    ToolExecutionError,
    ValidationError,
)
from planner_bot.log import get_logger

logger = get_logger(__name__)


class ToolRegistry:
    """Registry of all available tools."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool
        logger.debug("tool_registered", tool_name=tool.name)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def all_tools(self) -> list[Tool]:
        return list(self._tools.values())

    def to_api_list(self) -> list[dict[str, Any]]:
        return [tool.to_api_dict() for tool in self._tools.values()]

    def discover_and_register(self) -> None:
        """Import and register all built-in tools."""
        from planner_bot.ai.tools.create import (
            CreateEventTool,
            CreateNoteTool,
            CreateProjectTool,
            CreateTaskTool,
        )
        from planner_bot.ai.tools.delete import DeleteEntityTool
        from planner_bot.ai.tools.query import QueryEntitiesTool, SearchEntitiesTool
        from planner_bot.ai.tools.statistics import GetStatisticsTool
        from planner_bot.ai.tools.update import (
            UpdateEventTool,
            UpdateNoteTool,
            UpdateProjectTool,
            UpdateTaskTool,
        )

        for tool in (
            CreateTaskTool(),
            CreateEventTool(),
            CreateNoteTool(),
            CreateProjectTool(),
            QueryEntitiesTool(),
            SearchEntitiesTool(),
            UpdateTaskTool(),
            UpdateEventTool(),
            UpdateNoteTool(),
            UpdateProjectTool(),
            DeleteEntityTool(),
            GetStatisticsTool(),
        ):
            self.register(tool)

    async def dispatch(self, name: str, raw_input: Any, ctx: ToolContext) -> ToolResult:
        """Run a tool by name. Never raises: every failure becomes a failed result.

        ``raw_input`` may be the JSON-encoded argument string straight from the
        model or an already decoded object.
        """
        started = time.monotonic()
        logger.info("tool_call", tool_name=name)
        result = await self._dispatch(name, raw_input, ctx)
        logger.info(
            "tool_result",
            tool_name=name,
            success=result.success,
            error=result.error,
            duration_ms=round((time.monotonic() - started) * 1000),
        )
        return result

    async def _dispatch(self, name: str, raw_input: Any, ctx: ToolContext) -> ToolResult:
        tool = self._tools.get(name)
        if tool is None:
            return ToolResult.fail(f"Unknown tool: {name}")

        try:
            if isinstance(raw_input, str):
                try:
                    raw_input = json.loads(raw_input) if raw_input.strip() else {}
                except json.JSONDecodeError as e:
                    raise ValidationError(f"Invalid JSON arguments: {e}") from e
            return await tool.run(raw_input, ctx)
        except AmbiguousReferenceError as e:
            return ToolResult.fail(str(e), data={"matches": [c.to_dict() for c in e.candidates]})
        except (ValidationError, NotFoundError) as e:
            return ToolResult.fail(str(e))
        except Exception as e:
            logger.exception("tool_execution_error", tool_name=name)
            return ToolResult.fail(str(ToolExecutionError(name, e)))
