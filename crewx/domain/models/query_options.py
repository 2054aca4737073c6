"""Per-invocation options passed to provider query/execute calls."""

from typing import Any

from pydantic import BaseModel, Field


class ConversationMessage(BaseModel):
    """A prior turn in the conversation."""

    text: str
    is_assistant: bool = False
    metadata: dict[str, Any] | None = None


class QueryOptions(BaseModel):
    """Options for a single provider invocation.

    Not stored by providers; defaults such as timeouts are resolved per
    provider and per mode when a field is left unset.
    """

    timeout_ms: int | None = Field(default=None, gt=0)
    working_directory: str | None = None
    additional_args: list[str] = Field(default_factory=list)
    task_id: str | None = None
    model: str | None = None
    security_key: str | None = None
    agent_id: str | None = None
    messages: list[ConversationMessage] = Field(default_factory=list)
    piped_context: str | None = None
