from typing import Any, Literal

from pydantic import BaseModel, Field


class BaseOutput(BaseModel):
    schema_version: int = 1
    command: Literal["query", "execute", "providers", "doctor"]
    exit_code: int
    error: str | None = None


class AgentResult(BaseModel):
    """One agent's response within a query or execute run."""
    agent_id: str
    provider: str
    success: bool
    content: str = ""
    error: str | None = None
    task_id: str | None = None
    model: str | None = None
    duration_ms: int = 0
    tool_call: dict[str, Any] | None = None


class QueryOutput(BaseOutput):
    command: Literal["query"] = "query"
    results: list[AgentResult] = Field(default_factory=list)
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    duration_ms: int = 0


class ExecuteOutput(QueryOutput):
    command: Literal["execute"] = "execute"  # type: ignore[assignment]


class ProviderSummary(BaseModel):
    """Summary of a provider for list output."""
    name: str
    description: str
    cli_command: str | None = None
    supports_tool_calls: bool = False
    builtin: bool = True
    available: bool | None = None


class ProvidersOutput(BaseOutput):
    command: Literal["providers"] = "providers"
    providers: list[ProviderSummary] = Field(default_factory=list)


class DoctorCheck(BaseModel):
    """Result of checking a single provider."""

    provider: str
    builtin: bool
    valid: bool
    available: bool = False
    error: str | None = None


class DoctorOutput(BaseOutput):
    command: Literal["doctor"] = "doctor"
    checks: list[DoctorCheck] = Field(default_factory=list)
    all_passed: bool = True
