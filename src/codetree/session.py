"""Navigation pipeline.

One ``navigate()`` call turns a page URL into a tree: select the provider,
parse the route, resolve the ref, then fetch (or, in review mode, build) the
tree. Each call bumps a navigation counter; a navigation that finishes after
a newer one started returns ``None`` and its result is dropped.
"""

import logging
from typing import Optional
from urllib.parse import urlparse

from codetree.branches import BranchCache, BranchResolver
from codetree.client import ApiClient
from codetree.config import CodeTreeConfig
from codetree.errors import CodeTreeError, NotApplicable, TreeTooLarge
from codetree.models import DomSnapshot, Location, NavigationResult, Route, RouteType, Tree
from codetree.providers import Provider, ProviderRegistry
from codetree.store import KeyValueStore, StoreKey, get_access_token, record_huge_repo
from codetree.tree import TreeFetcher

logger = logging.getLogger(__name__)


class NavigationSession:
    """Resolves pages and their trees for one browsing session."""

    def __init__(
        self,
        store: KeyValueStore,
        registry: Optional[ProviderRegistry] = None,
        config: Optional[CodeTreeConfig] = None,
        branch_cache: Optional[BranchCache] = None,
        token: Optional[str] = None,
    ):
        """Initialize the session.

        Args:
            store: Key-value store holding tokens and preferences.
            registry: Provider registry (default: public hosts + custom instances).
            config: Client configuration.
            branch_cache: Default branch cache, shared across sessions if given.
            token: Access token overriding whatever the store holds.
        """
        self.store = store
        self.config = config or CodeTreeConfig()
        self.registry = registry or ProviderRegistry.default(store, self.config)
        self.branch_cache = branch_cache or BranchCache()
        self.token = token
        self._navigation = 0
        self._current: Optional[Location] = None
        self._provider: Optional[Provider] = None
        self._clients: dict[tuple[str, Optional[str]], ApiClient] = {}
        self._fetchers: dict[tuple[str, Optional[str]], TreeFetcher] = {}

    @property
    def current(self) -> Optional[Location]:
        return self._current

    @property
    def provider(self) -> Optional[Provider]:
        return self._provider

    async def close(self) -> None:
        for client in self._clients.values():
            await client.close()
        self._clients.clear()
        self._fetchers.clear()

    async def __aenter__(self) -> "NavigationSession":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    def _connection(self, provider: Provider) -> tuple[ApiClient, TreeFetcher]:
        """API client and tree fetcher for ``provider`` with the current token."""
        token = self.token or get_access_token(self.store, provider.hostname)
        key = (provider.api_root, token)
        if key not in self._clients:
            client = ApiClient.from_config(provider.api_root, provider.auth_headers(token), self.config)
            self._clients[key] = client
            self._fetchers[key] = TreeFetcher(provider, client)
        return self._clients[key], self._fetchers[key]

    def _is_stale(self, navigation: int) -> bool:
        return navigation != self._navigation

    def parse(self, url: str, dom: Optional[DomSnapshot] = None) -> tuple[Provider, Route]:
        """Select the provider and parse ``url``. Raises NotApplicable."""
        hostname = urlparse(url).hostname or ""
        provider = self.registry.get_provider(hostname, dom)
        if provider is None:
            raise NotApplicable(f"No provider for host {hostname!r}")
        return provider, provider.parse_route(url, dom)

    async def navigate(self, url: str, dom: Optional[DomSnapshot] = None) -> Optional[NavigationResult]:
        """Resolve ``url`` into a location and its tree.

        Returns None when the page is not a repository view or when a newer
        navigation started meanwhile. Fetch errors propagate unless the
        navigation has been superseded.
        """
        self._navigation += 1
        navigation = self._navigation

        try:
            provider, route = self.parse(url, dom)
        except NotApplicable as e:
            logger.debug("Skipping %s: %s", url, e)
            self._current = None
            self._provider = None
            return None

        client, fetcher = self._connection(provider)
        try:
            result = await self._load(provider, route, client, fetcher, dom, navigation)
        except CodeTreeError:
            if self._is_stale(navigation):
                logger.debug("Dropping error for %s, a newer navigation started", url)
                return None
            raise

        if result is None or self._is_stale(navigation):
            logger.debug("Discarding result for %s, a newer navigation started", url)
            return None

        self._current = result.location
        self._provider = provider
        return result

    async def _load(
        self,
        provider: Provider,
        route: Route,
        client: ApiClient,
        fetcher: TreeFetcher,
        dom: Optional[DomSnapshot],
        navigation: int,
    ) -> Optional[NavigationResult]:
        resolver = BranchResolver(provider, self.branch_cache, self.config.fallback_branch)
        ref = await resolver.resolve(route, client, dom, previous=self._current)
        if self._is_stale(navigation):
            return None

        review_id = None
        if route.type is RouteType.REVIEW_CHANGES and self.store.get(StoreKey.PR):
            review_id = route.review_id
        location = route.location.with_ref(ref, sub_path=resolver.sub_path(route, ref), review_id=review_id)

        lazy = not provider.should_load_entire_tree(location, self.store, self.config)
        try:
            tree = await provider.get_tree(client, fetcher, location, "" if lazy else None)
        except TreeTooLarge:
            logger.info("%s is too large for a recursive listing, loading lazily", location.identity)
            record_huge_repo(self.store, location.identity, self.config.max_huge_repos)
            lazy = True
            tree = await provider.get_tree(client, fetcher, location, "")

        submodules: dict[str, str] = {}
        if not location.review_id:
            submodules = await provider.get_submodules(client, location, tree)

        return NavigationResult(location=location, tree=tree, lazy=lazy, submodules=submodules)

    async def expand(self, dir_path: str) -> Optional[Tree]:
        """Fetch the children of ``dir_path`` in the current location.

        Concurrent expansions of the same directory share one request.
        Returns None if the session navigated away meanwhile, whether the
        fetch succeeded or failed.
        """
        if self._current is None or self._provider is None:
            raise CodeTreeError("No repository location to expand")

        navigation = self._navigation
        provider, location = self._provider, self._current
        client, fetcher = self._connection(provider)
        try:
            tree = await provider.get_tree(client, fetcher, location, dir_path)
        except CodeTreeError:
            if self._is_stale(navigation):
                return None
            raise
        if self._is_stale(navigation):
            return None
        return tree
