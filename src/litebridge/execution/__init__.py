"""Blocking execution: the per-connection worker thread."""

from litebridge.execution.worker import ConnectionWorker, NativeSession

__all__ = ["ConnectionWorker", "NativeSession"]
