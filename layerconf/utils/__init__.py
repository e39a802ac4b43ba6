"""Utilities supporting the configuration engine."""

from .watcher import FileChangeTrigger

__all__ = ["FileChangeTrigger"]
