"""Provider adapters for codetree."""

from .base import Provider
from .github import GitHubProvider
from .gitlab import GitLabProvider
from .registry import ProviderRegistry

__all__ = [
    "GitHubProvider",
    "GitLabProvider",
    "Provider",
    "ProviderRegistry",
]
