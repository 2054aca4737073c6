"""Dynamic provider configuration models (parsed from YAML)."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class TimeoutSettings(BaseModel):
    """Per-mode timeouts in milliseconds."""

    model_config = ConfigDict(extra="forbid")

    query: int | None = Field(default=None, gt=0)
    execute: int | None = Field(default=None, gt=0)


class ErrorPatternConfig(BaseModel):
    """Maps an output signature to a user-facing error message."""

    model_config = ConfigDict(extra="forbid")

    pattern: str
    type: str = "error"
    message: str


class PluginProviderConfig(BaseModel):
    """A local CLI tool exposed as provider ``plugin/<id>``."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(min_length=1)
    type: Literal["plugin"] = "plugin"
    cli_command: str
    display_name: str | None = None
    description: str | None = None
    default_model: str | None = None
    query_args: list[str] = Field(default_factory=list)
    execute_args: list[str] = Field(default_factory=list)
    prompt_in_args: bool = False
    timeout: TimeoutSettings | None = None
    error_patterns: list[ErrorPatternConfig] = Field(default_factory=list)
    not_installed_message: str | None = None
    env: dict[str, str] = Field(default_factory=dict)


class RemoteAuthConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Checked against the allowed set by SecurityValidator, not here
    type: str = "none"
    token: str | None = None


class RemoteProviderConfig(BaseModel):
    """Another CrewX instance exposed as provider ``remote/<id>``.

    ``location`` and ``external_agent_id`` are optional here so the
    security policy can reject their absence with its own messages.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(min_length=1)
    type: Literal["remote"] = "remote"
    location: str | None = None
    external_agent_id: str | None = None
    display_name: str | None = None
    description: str | None = None
    default_model: str | None = None
    auth: RemoteAuthConfig | None = None
    timeout: TimeoutSettings | None = None
    headers: dict[str, str] = Field(default_factory=dict)


DynamicProviderConfig = PluginProviderConfig | RemoteProviderConfig
