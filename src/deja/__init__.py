"""deja - search the shell commands run by Claude Code in past sessions."""

__version__ = "0.4.0"
