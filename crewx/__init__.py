"""CrewX provider execution and tool-call orchestration."""

__version__ = "0.1.0"
