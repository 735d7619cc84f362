"""codetree - resolve repository pages into canonical file trees."""

__version__ = "0.1.0"

from codetree.branches import BranchCache, BranchResolver
from codetree.config import CodeTreeConfig
from codetree.errors import (
    AuthRequired,
    CodeTreeError,
    MalformedResponse,
    NetworkFailure,
    NotApplicable,
    RefNotFound,
    TreeTooLarge,
)
from codetree.models import (
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
from codetree.providers import GitHubProvider, GitLabProvider, ProviderRegistry
from codetree.session import NavigationSession
from codetree.store import JsonFileStore, MemoryStore, StoreKey

__all__ = [
    "AuthRequired",
    "BranchCache",
    "BranchResolver",
    "CodeTreeConfig",
    "CodeTreeError",
    "DomSnapshot",
    "EntryKind",
    "GitHubProvider",
    "GitLabProvider",
    "JsonFileStore",
    "Location",
    "MalformedResponse",
    "MemoryStore",
    "NavigationResult",
    "NavigationSession",
    "NetworkFailure",
    "NotApplicable",
    "PatchAction",
    "PatchInfo",
    "ProviderRegistry",
    "RefNotFound",
    "Route",
    "RouteType",
    "StoreKey",
    "Tree",
    "TreeEntry",
    "TreeTooLarge",
    "__version__",
]
