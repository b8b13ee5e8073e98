"""Core engine layer for datavcs.

This module provides the repository handle and the add, get, status and
history operations built on top of the storage layer.
"""

from datavcs.core.paths import GuardedPath, IgnoreRules, PathGuard
from datavcs.core.repository import Repository
from datavcs.core.results import FileResult, FileStatus, Outcome, StatusResult, summarize

__all__ = [
    "GuardedPath",
    "IgnoreRules",
    "PathGuard",
    "Repository",
    "FileResult",
    "FileStatus",
    "Outcome",
    "StatusResult",
    "summarize",
]
