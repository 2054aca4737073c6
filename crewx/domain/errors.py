"""Domain-level exceptions for CrewX."""


class CrewxError(Exception):
    """Base class for all CrewX errors."""

    pass


class ProviderError(CrewxError):
    """Raised when a provider fails (network, auth, timeout, etc.)."""

    pass


class ProviderNotAvailableError(ProviderError):
    """Raised when a provider is unknown or its CLI is not installed."""

    def __init__(self, provider_name: str) -> None:
        super().__init__(f"AI Provider '{provider_name}' is not available or not installed")
        self.provider_name = provider_name


class ProviderConfigError(CrewxError):
    """Raised when a dynamic provider configuration is structurally invalid."""

    pass


class ConfigurationSecurityError(CrewxError):
    """Raised when a provider configuration violates the security policy.

    Thrown at provider-creation time so the provider is never registered.
    """

    pass


class ToolExecutionError(CrewxError):
    """Raised when a tool cannot be found or dispatched."""

    pass
