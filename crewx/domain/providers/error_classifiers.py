"""Per-provider heuristics deciding whether CLI output is actually a failure.

Exit codes and stderr are unreliable across vendor CLIs, so each provider
gets a classifier strategy. Every classifier is a pure function of
(stderr, stdout) and shares the rule that CLI option errors are fatal.
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass


@dataclass(frozen=True)
class ErrorClassification:
    error: bool
    message: str = ""


NO_ERROR = ErrorClassification(error=False)

_CLI_OPTION_ERROR = re.compile(r"unknown option|invalid option", re.IGNORECASE)


def _first_line(text: str) -> str:
    for line in text.strip().splitlines():
        if line.strip():
            return line.strip()
    return "Unknown error"


class ErrorClassifier:
    """Default policy.

    stderr with no stdout is fatal; stderr alongside stdout is treated as
    incidental noise.
    """

    def parse_provider_error(self, stderr: str, stdout: str) -> ErrorClassification:
        if _CLI_OPTION_ERROR.search(stderr):
            return ErrorClassification(True, _first_line(stderr))
        return self._classify(stderr, stdout)

    def _classify(self, stderr: str, stdout: str) -> ErrorClassification:
        return self._default_policy(stderr, stdout)

    @staticmethod
    def _default_policy(stderr: str, stdout: str) -> ErrorClassification:
        if stderr.strip() and not stdout.strip():
            return ErrorClassification(True, stderr.strip())
        return NO_ERROR


# Library-internal log lines the Claude CLI prints to stderr while still
# producing a valid answer. Extend via ClaudeErrorClassifier(extra_debug_patterns=...).
CLAUDE_DEBUG_PATTERNS: tuple[str, ...] = (
    r"follow-redirects options",
    r"spawn-rx",
    r"\[Function:",
    r"connectionListener",
    r"maxRedirects:",
    r"\{[\s\S]*protocol:.*\}",
)

CLAUDE_ERROR_INDICATORS: tuple[str, ...] = (
    r"^Error:",
    r"^error:",
    r"^Failed:",
    r"^Unable to",
    r"command not found",
    r"no such file",
    r"permission denied",
    r"ECONNREFUSED",
    r"ETIMEDOUT",
    r"ENOTFOUND",
    r"EHOSTUNREACH",
    r"\bconnection refused\b",
    r"\bnetwork error\b",
    r"\brequest failed\b",
)

_CLAUDE_RESET_TIME = re.compile(r"resets (\d+(?::\d+)?(?:am|pm))", re.IGNORECASE)


class ClaudeErrorClassifier(ErrorClassifier):
    def __init__(self, extra_debug_patterns: Iterable[str] = ()) -> None:
        self._debug_patterns = [
            re.compile(p, re.IGNORECASE) for p in (*CLAUDE_DEBUG_PATTERNS, *extra_debug_patterns)
        ]
        self._error_indicators = [
            re.compile(p, re.IGNORECASE | re.MULTILINE) for p in CLAUDE_ERROR_INDICATORS
        ]

    def _classify(self, stderr: str, stdout: str) -> ErrorClassification:
        combined = f"{stderr}\n{stdout}"
        if "Session limit reached" in combined:
            match = _CLAUDE_RESET_TIME.search(combined)
            reset_time = match.group(1) if match else "later today"
            return ErrorClassification(
                True,
                f"Claude Pro session limit reached. Your limit will reset at {reset_time}. "
                f"Please try again after the reset or use another AI agent "
                f"(Gemini or Copilot) in the meantime.",
            )

        if "authentication required" in stderr or "Please run `claude login`" in stderr:
            return ErrorClassification(
                True,
                "Claude CLI authentication required. Please run `claude login` to authenticate.",
            )

        if not stderr.strip():
            return NO_ERROR

        if any(p.search(stderr) for p in self._debug_patterns):
            return NO_ERROR

        if any(p.search(stderr) for p in self._error_indicators):
            return ErrorClassification(True, _first_line(stderr))

        if stdout.strip():
            return NO_ERROR
        return self._default_policy(stderr, stdout)


_COPILOT_AUTH_PHRASES = (
    "not authenticated",
    "authentication required",
    "authentication failed",
    "please log in",
    "please login",
    "copilot login",
)


class CopilotErrorClassifier(ErrorClassifier):
    def _classify(self, stderr: str, stdout: str) -> ErrorClassification:
        # Copilot prints quota and auth failures to stdout as well as stderr
        combined = f"{stderr}\n{stdout}".lower()

        if "quota_exceeded" in combined or ("quota" in combined and "exceed" in combined):
            return ErrorClassification(
                True,
                "Copilot quota exceeded. Please check your plan at "
                "https://github.com/features/copilot/plans or try again later.",
            )

        if any(phrase in combined for phrase in _COPILOT_AUTH_PHRASES):
            return ErrorClassification(
                True,
                "Copilot CLI authentication is required. "
                "Please authenticate using the `copilot login` command.",
            )

        # stdout may legitimately discuss networking, so only stderr counts
        stderr_lower = stderr.lower()
        if "network" in stderr_lower or "connection" in stderr_lower:
            return ErrorClassification(
                True,
                "Network connection error. Please check your internet connection and try again.",
            )

        return self._default_policy(stderr, stdout)


class CodexErrorClassifier(ErrorClassifier):
    def _classify(self, stderr: str, stdout: str) -> ErrorClassification:
        if "not logged in" in stderr or "authentication required" in stderr:
            return ErrorClassification(
                True,
                "Codex CLI authentication required. Please run `codex login` to authenticate.",
            )
        if "rate limit" in stderr:
            return ErrorClassification(
                True, "Codex API rate limit reached. Please try again later."
            )
        if stdout.strip():
            return NO_ERROR
        if stderr.strip():
            return ErrorClassification(True, _first_line(stderr))
        return self._default_policy(stderr, stdout)


@dataclass(frozen=True)
class CompiledErrorPattern:
    pattern: str
    message: str
    regex: re.Pattern[str] | None = None

    def matches(self, text: str) -> bool:
        if self.pattern in text:
            return True
        return self.regex is not None and self.regex.search(text) is not None


class PatternErrorClassifier(ErrorClassifier):
    """Configured ``{pattern, message}`` list for plugin providers; first match wins."""

    def __init__(self, patterns: Sequence[CompiledErrorPattern]) -> None:
        self._patterns = tuple(patterns)

    def _classify(self, stderr: str, stdout: str) -> ErrorClassification:
        combined = f"{stderr}\n{stdout}"
        for entry in self._patterns:
            if entry.matches(combined):
                return ErrorClassification(True, entry.message)
        return self._default_policy(stderr, stdout)
