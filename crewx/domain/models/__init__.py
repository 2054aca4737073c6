"""Domain models for CrewX."""

from .ai_response import AIResponse, ToolCallRecord
from .provider_config import (
    DynamicProviderConfig,
    ErrorPatternConfig,
    PluginProviderConfig,
    RemoteAuthConfig,
    RemoteProviderConfig,
    TimeoutSettings,
)
from .query_options import ConversationMessage, QueryOptions
from .tool import ToolDefinition, ToolExecutionResult
from .timeout_config import TimeoutConfig
from .tool_use import ToolUseRequest


__all__ = [
    "AIResponse",
    "ToolCallRecord",
    "DynamicProviderConfig",
    "ErrorPatternConfig",
    "PluginProviderConfig",
    "RemoteAuthConfig",
    "RemoteProviderConfig",
    "TimeoutSettings",
    "ConversationMessage",
    "QueryOptions",
    "ToolDefinition",
    "ToolExecutionResult",
    "TimeoutConfig",
    "ToolUseRequest",
]
