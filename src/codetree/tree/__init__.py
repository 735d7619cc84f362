"""Tree retrieval, normalization and diff-tree construction."""

from .diff import build_from_changes, classify_action, count_changes
from .fetcher import TreeFetcher, TreeRequest
from .gitmodules import parse_gitmodules
from .normalizer import GIT_KINDS, normalize
from .ordering import path_key, sort_tree

__all__ = [
    "GIT_KINDS",
    "TreeFetcher",
    "TreeRequest",
    "build_from_changes",
    "classify_action",
    "count_changes",
    "normalize",
    "parse_gitmodules",
    "path_key",
    "sort_tree",
]
