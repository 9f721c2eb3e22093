"""SQLite persistence for the task graph."""
