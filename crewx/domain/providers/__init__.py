from crewx.domain.constants import BuiltInProviders

from .ai_provider import AIProvider
from .claude_cli_provider import ClaudeCliProvider
from .cli_provider import CliProvider
from .codex_cli_provider import CodexCliProvider
from .copilot_cli_provider import CopilotCliProvider
from .dynamic_provider_factory import DynamicProviderFactory
from .gemini_cli_provider import GeminiCliProvider
from .mock_provider import MockProvider
from .provider_factory import ProviderFactory
from .remote_provider import RemoteProvider
from .tool_call_loop import ToolCallLoop

# Register built-in providers
ProviderFactory.register(BuiltInProviders.CLAUDE, ClaudeCliProvider)
ProviderFactory.register(BuiltInProviders.GEMINI, GeminiCliProvider)
ProviderFactory.register(BuiltInProviders.COPILOT, CopilotCliProvider)
ProviderFactory.register(BuiltInProviders.CODEX, CodexCliProvider)
ProviderFactory.register(BuiltInProviders.MOCK, MockProvider)

__all__ = [
    "AIProvider",
    "CliProvider",
    "ClaudeCliProvider",
    "GeminiCliProvider",
    "CopilotCliProvider",
    "CodexCliProvider",
    "MockProvider",
    "RemoteProvider",
    "ProviderFactory",
    "DynamicProviderFactory",
    "ToolCallLoop",
]
