"""Normalized provider response model."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ToolCallRecord(BaseModel):
    """The last tool executed while producing a response."""

    model_config = ConfigDict(frozen=True)

    tool_name: str
    tool_input: Any = None
    tool_result: Any = None


class AIResponse(BaseModel):
    """Result of a single provider query or execute call.

    ``content`` is user-facing text with embedded tool-call JSON already
    stripped. ``raw_output`` keeps the unfiltered stdout so the tool-call
    loop can still detect tool requests; it is never serialized.

    Failures always carry a non-empty ``error``.
    """

    model_config = ConfigDict(frozen=True)

    content: str = ""
    provider: str
    command: str
    success: bool
    error: str | None = None
    task_id: str | None = None
    model: str | None = None
    tool_call: ToolCallRecord | None = None
    raw_output: str | None = Field(default=None, exclude=True, repr=False)

    @model_validator(mode="after")
    def _failure_has_error(self) -> "AIResponse":
        if not self.success and not self.error:
            raise ValueError("failed responses must carry an error message")
        return self

    @classmethod
    def failure(
        cls,
        *,
        provider: str,
        command: str,
        error: str,
        task_id: str | None = None,
        model: str | None = None,
        content: str = "",
    ) -> "AIResponse":
        return cls(
            content=content,
            provider=provider,
            command=command,
            success=False,
            error=error,
            task_id=task_id,
            model=model,
        )
