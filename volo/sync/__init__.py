"""Cursor-driven platform sync."""

from .cursors import CursorEngine, FetchPage, ProcessItem, SyncPage, SyncResult
from .workflow import run_sync_workflow

__all__ = [
    "CursorEngine",
    "FetchPage",
    "ProcessItem",
    "SyncPage",
    "SyncResult",
    "run_sync_workflow",
]
