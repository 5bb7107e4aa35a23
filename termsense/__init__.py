"""termsense — classify streaming terminal output into cwd, activity and assistant state."""

__version__ = "0.1.0"
