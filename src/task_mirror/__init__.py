"""task_mirror: offline edit queue and conflict resolution for a task database."""

__version__ = "0.1.0"
