"""
Security validation for dynamically configured providers.

Every plugin or remote provider configuration passes through these
checks before a provider is built from it:
- Blocked CLI command names
- Absolute path and path traversal rejection
- Shell metacharacter and null byte rejection (command and args)
- ReDoS-shaped error pattern rejection
- Dangerous environment variable rejection
- Remote location, agent id and auth checks

All checks raise ConfigurationSecurityError; nothing is partially accepted.
"""

import logging
import re
from pathlib import Path

from crewx.domain.errors import ConfigurationSecurityError, CrewxError
from crewx.domain.models.provider_config import (
    ErrorPatternConfig,
    PluginProviderConfig,
    RemoteProviderConfig,
)

logger = logging.getLogger(__name__)


class PathValidationError(CrewxError):
    """Raised when a path escapes its permitted root."""
    pass


class SecurityValidator:
    """Validates dynamic provider configuration against the security policy."""

    BLOCKED_CLI_COMMANDS = frozenset({
        # Shell interpreters
        "bash", "sh", "zsh", "fish", "ksh", "tcsh", "csh",
        "cmd", "powershell", "pwsh", "command",
        # Scripting runtimes
        "python", "python3", "node", "ruby", "perl", "php",
        # Destructive file operations
        "rm", "del", "rmdir", "mv", "cp", "dd",
        # Permission changes and escalation
        "chmod", "chown", "sudo", "su", "doas",
        # Network fetch
        "curl", "wget", "nc", "netcat", "telnet", "ssh",
        # Code execution builtins
        "eval", "exec", "source",
    })

    BLOCKED_ENV_VARS = frozenset({
        "PATH",
        "LD_LIBRARY_PATH",
        "DYLD_LIBRARY_PATH",
        "LD_PRELOAD",
        "DYLD_INSERT_LIBRARIES",
        "IFS",
        "BASH_ENV",
        "ENV",
    })

    ALLOWED_AUTH_TYPES = ("bearer", "api_key", "none")
    ALLOWED_REMOTE_SCHEMES = ("file://", "http://", "https://")

    COMMAND_METACHARS = re.compile(r"[;&|<>`$(){}\[\]!]")
    ARG_METACHARS = re.compile(r"[;&|<>`$()!]")
    ENV_VALUE_METACHARS = re.compile(r"[;&|<>`$()]")

    # Nested quantifier shapes: (a+)+, (a*)*, (a+)*, (a*)+
    REDOS_SHAPES = (
        re.compile(r"\(.*\+.*\)\+"),
        re.compile(r"\(.*\*.*\)\*"),
        re.compile(r"\(.*\+.*\)\*"),
        re.compile(r"\(.*\*.*\)\+"),
    )

    @classmethod
    def validate_cli_command(cls, cli_command: str) -> str:
        """
        Validate a plugin's CLI command.

        Command names resolved via PATH and relative paths inside the
        project tree are accepted.

        Raises:
            ConfigurationSecurityError: If the command is blocked or unsafe

        Examples:
            >>> SecurityValidator.validate_cli_command("aider")
            'aider'
            >>> SecurityValidator.validate_cli_command("/bin/bash")
            ConfigurationSecurityError: Security: CLI command '/bin/bash' is blocked ...
        """
        normalized = cli_command.strip().lower()

        command_name = re.split(r"[/\\]", normalized)[-1] or normalized
        if command_name in cls.BLOCKED_CLI_COMMANDS:
            raise ConfigurationSecurityError(
                f"Security: CLI command '{cli_command}' is blocked for security reasons. "
                f"This command is considered dangerous and cannot be used as a plugin provider."
            )

        if normalized.startswith("/") or normalized.startswith("\\"):
            raise ConfigurationSecurityError(
                "Security: Absolute paths are not allowed. "
                "Use relative paths from project root (e.g., 'tools/my-agent') "
                "or command names in PATH (e.g., 'aider')."
            )

        if ".." in normalized:
            raise ConfigurationSecurityError(
                "Security: Path traversal (..) is not allowed. "
                "Use relative paths within the project directory only."
            )

        if cls.COMMAND_METACHARS.search(cli_command):
            raise ConfigurationSecurityError(
                f"Security: CLI command '{cli_command}' contains shell metacharacters. "
                f"Only alphanumeric characters, hyphens, underscores, dots, and forward slashes are allowed."
            )

        if "\0" in cli_command:
            raise ConfigurationSecurityError(
                "Security: CLI command contains null bytes (potential path injection)."
            )

        return cli_command

    @classmethod
    def validate_cli_args(cls, args: list[str]) -> list[str]:
        """Reject args carrying shell metacharacters, substitution or null bytes."""
        for arg in args:
            if cls.ARG_METACHARS.search(arg):
                raise ConfigurationSecurityError(
                    f"Security: CLI argument '{arg}' contains dangerous shell metacharacters. "
                    f"Arguments with ;, &, |, <, >, `, $, (), ! are not allowed."
                )
            if "$(" in arg or "`" in arg:
                raise ConfigurationSecurityError(
                    f"Security: CLI argument '{arg}' contains command substitution pattern. "
                    f"$() and backticks are not allowed."
                )
            if "\0" in arg:
                raise ConfigurationSecurityError(
                    "Security: CLI argument contains null bytes (potential injection)."
                )
        return args

    @classmethod
    def validate_error_patterns(cls, patterns: list[ErrorPatternConfig]) -> list[re.Pattern[str]]:
        """
        Reject catastrophic-backtracking shapes, then compile each pattern.

        Returns:
            Compiled patterns in configuration order
        """
        compiled: list[re.Pattern[str]] = []
        for entry in patterns:
            pattern = entry.pattern
            for shape in cls.REDOS_SHAPES:
                if shape.search(pattern):
                    raise ConfigurationSecurityError(
                        f"Security: Error pattern '{pattern}' may cause ReDoS (catastrophic backtracking). "
                        f"Avoid nested quantifiers like (a+)+, (a*)*, etc."
                    )
            try:
                compiled.append(re.compile(pattern))
            except re.error as e:
                raise ConfigurationSecurityError(
                    f"Invalid regex pattern '{pattern}': {e}"
                ) from e
        return compiled

    @classmethod
    def validate_env_vars(cls, env: dict[str, str]) -> dict[str, str]:
        """Reject linker/shell-init overrides; warn on metacharacters in values."""
        for key, value in env.items():
            if key.upper() in cls.BLOCKED_ENV_VARS:
                raise ConfigurationSecurityError(
                    f"Security: Environment variable '{key}' cannot be overridden. "
                    f"It can alter how executables and libraries are resolved."
                )
            if "\0" in key or "\0" in value:
                raise ConfigurationSecurityError(
                    f"Security: Environment variable '{key}' contains null bytes."
                )
            if cls.ENV_VALUE_METACHARS.search(value):
                logger.warning(
                    f"Environment variable '{key}' contains shell metacharacters; "
                    f"it is passed through verbatim"
                )
        return env

    @classmethod
    def validate_plugin_config(cls, config: PluginProviderConfig) -> list[re.Pattern[str]]:
        """
        Run the full plugin policy in order.

        Returns:
            Compiled error patterns, ready to hand to the error classifier
        """
        cls.validate_cli_command(config.cli_command)
        cls.validate_cli_args(config.query_args)
        cls.validate_cli_args(config.execute_args)
        compiled = cls.validate_error_patterns(config.error_patterns)
        cls.validate_env_vars(config.env)
        return compiled

    @classmethod
    def validate_remote_config(cls, config: RemoteProviderConfig) -> None:
        location = (config.location or "").strip()
        if not location:
            raise ConfigurationSecurityError(
                "Remote provider requires a location (file:// or http(s):// URL)"
            )

        if not config.external_agent_id:
            raise ConfigurationSecurityError(
                "Remote provider requires an external_agent_id"
            )

        if not location.startswith(cls.ALLOWED_REMOTE_SCHEMES):
            raise ConfigurationSecurityError(
                "Security: Remote location must start with file://, http://, or https://"
            )

        if location.startswith("file://") and ".." in location[len("file://"):]:
            raise ConfigurationSecurityError(
                "Security: Path traversal (..) is not allowed in remote file locations"
            )

        if config.auth is not None:
            if config.auth.type not in cls.ALLOWED_AUTH_TYPES:
                raise ConfigurationSecurityError(
                    f"Security: Invalid auth type: {config.auth.type}. "
                    f"Must be one of: {', '.join(cls.ALLOWED_AUTH_TYPES)}"
                )
            if config.auth.type != "none" and not (config.auth.token or "").strip():
                raise ConfigurationSecurityError(
                    f"Security: Auth type '{config.auth.type}' requires a token"
                )

    @classmethod
    def validate_within_root(cls, file_path: Path, root: Path) -> Path:
        """
        Validate that file_path is within root directory (no path traversal).

        Raises:
            PathValidationError: If file_path escapes root directory
        """
        try:
            file_resolved = file_path.resolve()
            root_resolved = root.resolve()
            file_resolved.relative_to(root_resolved)
            return file_resolved
        except ValueError:
            raise PathValidationError(
                f"Path traversal detected: {file_path} is not within {root}"
            )
