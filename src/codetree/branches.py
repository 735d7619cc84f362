"""Branch resolution.

A route remainder such as ``feature/login-v2/src/app.js`` does not say where
the ref ends and the path begins. Resolution tries the cheap sources first
and settles for a best-effort guess; a wrong guess surfaces later as a
RefNotFound from the tree fetch instead of blocking the page.
"""

import logging
import threading
from typing import Optional

from codetree.client import ApiClient
from codetree.config import DEFAULT_FALLBACK_BRANCH
from codetree.errors import CodeTreeError
from codetree.models import DomSnapshot, Location, Route, RouteType
from codetree.providers.base import Provider

logger = logging.getLogger(__name__)


class BranchCache:
    """Default branch per repository, kept for the life of the process."""

    def __init__(self) -> None:
        self._branches: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._branches.get(key)

    def set(self, key: str, branch: str) -> None:
        with self._lock:
            self._branches[key] = branch

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._branches

    def __len__(self) -> int:
        with self._lock:
            return len(self._branches)


class BranchResolver:
    """Fills in the ref for a parsed route."""

    def __init__(
        self,
        provider: Provider,
        cache: BranchCache,
        fallback_branch: str = DEFAULT_FALLBACK_BRANCH,
    ):
        self.provider = provider
        self.cache = cache
        self.fallback_branch = fallback_branch

    def _cache_key(self, location: Location) -> str:
        return f"{self.provider.hostname}/{location.identity}"

    async def resolve(
        self,
        route: Route,
        client: ApiClient,
        dom: Optional[DomSnapshot] = None,
        previous: Optional[Location] = None,
    ) -> str:
        """Return the ref for ``route``. Never raises on network failures.

        Args:
            route: Parsed route of the current page.
            client: API client for the route's provider.
            dom: DOM hints of the current page.
            previous: Location of the previous navigation, if any.
        """
        dom = dom or DomSnapshot()
        location = route.location
        branch: Optional[str] = None

        if route.type in (RouteType.TREE, RouteType.BLOB):
            branch = dom.first(self.provider.ref_selectors)
            if not branch and route.remainder:
                branch = await self._from_remainder(client, location, route.remainder)
        elif route.type is RouteType.COMMITS:
            branch = route.remainder.split("/")[0] or None
        elif route.type is RouteType.REVIEW_CHANGES and route.review_id:
            # The target branch of a review can change, so it is never cached
            branch = await self._review_target_branch(client, location, route.review_id)

        if branch:
            return branch

        if previous is not None and previous.identity == location.identity and previous.ref:
            return previous.ref

        cached = self.cache.get(self._cache_key(location))
        if cached:
            return cached

        return await self.default_branch(client, location)

    async def _from_remainder(self, client: ApiClient, location: Location, remainder: str) -> str:
        if "/" not in remainder:
            return remainder

        first_segment = remainder.split("/", 1)[0]
        try:
            exists = await self.provider.branch_exists(client, location, first_segment)
        except CodeTreeError as e:
            logger.debug("Branch probe for %r failed: %s", first_segment, e)
            exists = False

        if not exists:
            # Deeper prefixes are not probed; the first segment stays the best guess
            logger.debug("%r is not a known branch of %s, using it anyway", first_segment, location.identity)
        return first_segment

    async def _review_target_branch(
        self, client: ApiClient, location: Location, review_id: str
    ) -> Optional[str]:
        try:
            return await self.provider.get_review_target_branch(client, location, review_id)
        except CodeTreeError as e:
            logger.warning("Could not read target branch of review %s: %s", review_id, e)
            return None

    async def default_branch(self, client: ApiClient, location: Location) -> str:
        """Fetch and cache the default branch, falling back on failure."""
        try:
            branch = await self.provider.get_default_branch(client, location)
        except CodeTreeError as e:
            logger.warning(
                "Could not read default branch of %s, assuming %r: %s",
                location.identity, self.fallback_branch, e,
            )
            return self.fallback_branch

        if not branch:
            return self.fallback_branch
        self.cache.set(self._cache_key(location), branch)
        return branch

    @staticmethod
    def sub_path(route: Route, ref: str) -> Optional[str]:
        """Path left over once ``ref`` is stripped from a tree/blob remainder."""
        if route.type not in (RouteType.TREE, RouteType.BLOB):
            return None
        remainder = route.remainder
        if remainder.startswith(ref + "/"):
            return remainder[len(ref) + 1:].strip("/") or None
        return None
