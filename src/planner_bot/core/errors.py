"""Exception hierarchy for the assistant.

Only authentication, storage, prompt and model-service failures abort a turn.
Everything raised inside a tool handler is converted into a failed
``ToolResult`` at the dispatcher boundary.
"""

from __future__ import annotations

from dataclasses import dataclass


class PlannerError(Exception):
    """Base class for all planner_bot errors."""


class AuthenticationError(PlannerError):
    """No valid caller identity."""


class RateLimitError(PlannerError):
    """The caller exceeded the configured per-hour turn ceiling."""

    def __init__(self, limit: int):
        super().__init__(f"Rate limit exceeded: at most {limit} messages per hour")
        self.limit = limit


class ValidationError(PlannerError):
    """Malformed tool input or entity fields."""


@dataclass
class Candidate:
    id: str
    title: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "title": self.title}


class NotFoundError(PlannerError):
    def __init__(self, entity_type: str, identifier: str):
        super().__init__(f'No {entity_type} found matching "{identifier}"')
        self.entity_type = entity_type
        self.identifier = identifier


class AmbiguousReferenceError(PlannerError):
    def __init__(self, entity_type: str, identifier: str, candidates: list[Candidate]):
        super().__init__(
            f'Multiple {entity_type}s found matching "{identifier}". Please be more specific.'
        )
        self.entity_type = entity_type
        self.identifier = identifier
        self.candidates = candidates


class ExternalServiceError(PlannerError):
    """The model service was unreachable or answered with a non-success status."""

    def __init__(self, message: str, status: int | None = None, retryable: bool = False):
        super().__init__(message)
        self.status = status
        self.retryable = retryable


class ToolExecutionError(PlannerError):
    """Unexpected failure inside a tool handler."""

    def __init__(self, tool_name: str, cause: BaseException):
        super().__init__(f"Error executing {tool_name}: {cause}")
        self.tool_name = tool_name
        self.cause = cause
