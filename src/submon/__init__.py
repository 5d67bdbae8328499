"""Terminal dashboard for active OpenClaw subagent sessions."""

__version__ = "0.1.0"
