"""Persistence for parsed tasks."""

from taskline.storage.repository import SqlTaskRepository, TaskStore, open_repository

__all__ = ["SqlTaskRepository", "TaskStore", "open_repository"]
