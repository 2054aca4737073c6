"""Data-driven description of how to invoke one provider CLI."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Literal

from crewx.domain.constants import DEFAULT_TIMEOUT_MS

InvocationMode = Literal["query", "execute"]


@dataclass(frozen=True)
class ProviderBehavior:
    """Everything the process invoker needs to know about a provider.

    Built-in providers and configured plugins differ only in the values
    held here and in the strategies injected next to it.
    """

    name: str
    cli_command: str
    not_installed_message: str
    query_args: tuple[str, ...] = ()
    execute_args: tuple[str, ...] = ()
    prompt_in_args: bool = False
    query_timeout_ms: int = DEFAULT_TIMEOUT_MS
    execute_timeout_ms: int = DEFAULT_TIMEOUT_MS
    default_model: str | None = None
    # Prepend --model=<m> when a model override is given
    model_flag: bool = True
    pipe_context: bool = True
    # Exit code 0 with empty stdout counts as a failure
    require_output: bool = False
    supports_tool_calls: bool = False
    description: str = ""
    env: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def args_for(self, mode: InvocationMode) -> tuple[str, ...]:
        return self.execute_args if mode == "execute" else self.query_args

    def timeout_for(self, mode: InvocationMode) -> int:
        return self.execute_timeout_ms if mode == "execute" else self.query_timeout_ms
