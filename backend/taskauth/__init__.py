"""Authentication and session-lifecycle core for the task management API."""

__version__ = "1.0.0"
