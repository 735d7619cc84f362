"""Registry selecting the provider adapter for a hostname."""

import logging
from typing import Optional
from urllib.parse import urlparse

from codetree.config import CodeTreeConfig
from codetree.models import DomSnapshot
from codetree.providers.base import Provider
from codetree.providers.github import GitHubProvider
from codetree.providers.gitlab import GENERATOR_SELECTOR, GitLabProvider
from codetree.store import CustomInstance, KeyValueStore, get_custom_instances

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Registry for provider adapters."""

    def __init__(self, per_page: Optional[int] = None) -> None:
        self._providers: list[Provider] = []
        self.per_page = per_page

    def __iter__(self):
        return iter(self._providers)

    def register(self, provider: Provider) -> None:
        """Register a provider. Earlier registrations win on conflicts."""
        self._providers.append(provider)

    def register_instance(self, instance: CustomInstance) -> Optional[Provider]:
        """Register a self-hosted instance unless its host is already known."""
        hostname = instance.hostname
        if not hostname or self.get_provider(hostname) is not None:
            return None

        parsed = urlparse(instance.url)
        provider_cls = GitLabProvider if instance.type == "gitlab" else GitHubProvider
        provider = provider_cls(
            hostname,
            scheme=parsed.scheme or "https",
            port=parsed.port,
            **self._provider_options(),
        )
        self.register(provider)
        logger.debug("Registered custom instance %r", provider)
        return provider

    def get_provider(self, hostname: str, dom: Optional[DomSnapshot] = None) -> Optional[Provider]:
        """Get the provider for ``hostname``.

        Unknown hosts that render GitLab's generator meta tag are treated as
        self-managed GitLab instances.
        """
        for provider in self._providers:
            if provider.detect(hostname):
                return provider

        if dom is not None and dom.has(GENERATOR_SELECTOR):
            provider = GitLabProvider(hostname, **self._provider_options())
            self.register(provider)
            return provider
        return None

    def _provider_options(self) -> dict:
        return {"per_page": self.per_page} if self.per_page else {}

    @classmethod
    def default(
        cls,
        store: Optional[KeyValueStore] = None,
        config: Optional[CodeTreeConfig] = None,
    ) -> "ProviderRegistry":
        """Create registry with the public hosts and any custom instances."""
        registry = cls(per_page=config.per_page if config else None)
        options = registry._provider_options()
        registry.register(GitHubProvider(**options))
        registry.register(GitLabProvider(**options))
        if store is not None:
            for instance in get_custom_instances(store):
                registry.register_instance(instance)
        return registry
