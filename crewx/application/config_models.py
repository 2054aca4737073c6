"""CrewX configuration models (parsed from crewx.yaml).

Config structure:
    logs_dir: .crewx/logs
    max_tool_turns: 5
    providers:
      - id: aider
        type: plugin
        cli_command: aider
        query_args: ["--message"]
        prompt_in_args: true
      - id: backend
        type: remote
        location: https://crewx.example.com
        external_agent_id: backend_dev
    agents:
      - id: reviewer
        provider: [cli/claude, cli/gemini]
        inline:
          model: sonnet
        options:
          query:
            cli/claude: ["--permission-mode", "plan"]
            default: []

Provider entries stay raw mappings here; each is validated separately by
DynamicProviderFactory so one bad entry does not reject the whole file.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from crewx.domain.constants import BuiltInProviders, DEFAULT_MAX_TOOL_TURNS


class AgentConfig(BaseModel):
    """A named agent bound to one provider or an ordered fallback list."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    name: str | None = None
    role: str | None = None
    description: str | None = None
    provider: str | list[str] = BuiltInProviders.CLAUDE
    working_directory: str | None = None
    options: dict[str, Any] | list[str] | None = None
    inline: dict[str, Any] | None = None

    @property
    def model(self) -> str | None:
        if self.inline and isinstance(self.inline.get("model"), str):
            return self.inline["model"]
        return None


BUILT_IN_AGENTS: tuple[AgentConfig, ...] = (
    AgentConfig(id="claude", name="Claude AI", provider=BuiltInProviders.CLAUDE),
    AgentConfig(id="gemini", name="Gemini AI", provider=BuiltInProviders.GEMINI),
    AgentConfig(id="copilot", name="GitHub Copilot", provider=BuiltInProviders.COPILOT),
    AgentConfig(id="codex", name="Codex", provider=BuiltInProviders.CODEX),
)


class CrewxConfig(BaseModel):
    """Top-level configuration."""

    model_config = ConfigDict(extra="forbid")

    providers: list[dict[str, Any]] = Field(default_factory=list)
    agents: list[AgentConfig] = Field(default_factory=list)
    logs_dir: str = ".crewx/logs"
    max_tool_turns: int = Field(default=DEFAULT_MAX_TOOL_TURNS, ge=1)

    def all_agents(self) -> dict[str, AgentConfig]:
        """Built-in agents overlaid by configured agents with the same id."""
        agents = {agent.id: agent for agent in BUILT_IN_AGENTS}
        agents.update({agent.id: agent for agent in self.agents})
        return agents

    def get_agent(self, agent_id: str) -> AgentConfig | None:
        return self.all_agents().get(agent_id)
