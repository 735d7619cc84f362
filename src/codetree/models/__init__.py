"""Data models for codetree."""

from .schemas import (
    ChangedFile,
    DomSnapshot,
    EntryKind,
    Location,
    NavigationResult,
    PatchAction,
    PatchInfo,
    Route,
    RouteType,
    Tree,
    TreeEntry,
)

__all__ = [
    "ChangedFile",
    "DomSnapshot",
    "EntryKind",
    "Location",
    "NavigationResult",
    "PatchAction",
    "PatchInfo",
    "Route",
    "RouteType",
    "Tree",
    "TreeEntry",
]
