"""Provider naming constants."""

from enum import Enum


class ProviderNamespace(str, Enum):
    CLI = "cli"
    PLUGIN = "plugin"
    API = "api"
    REMOTE = "remote"


class BuiltInProviders:
    CLAUDE = "cli/claude"
    GEMINI = "cli/gemini"
    COPILOT = "cli/copilot"
    CODEX = "cli/codex"
    MOCK = "mock/default"


# Tried in order when a single requested provider is unavailable
DEFAULT_FALLBACK_ORDER = [
    BuiltInProviders.CLAUDE,
    BuiltInProviders.GEMINI,
    BuiltInProviders.COPILOT,
]

# Applies to every built-in CLI when no env override is set (30 minutes)
DEFAULT_TIMEOUT_MS = 1_800_000

DEFAULT_MAX_TOOL_TURNS = 5

TOOL_RESULT_PREVIEW_CHARS = 500


def qualify_provider_name(name: str) -> str:
    """Map a bare built-in short name like 'claude' to 'cli/claude'."""
    if "/" in name:
        return name
    return f"{ProviderNamespace.CLI.value}/{name}"
