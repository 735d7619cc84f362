"""Tree retrieval through a provider's listing API."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol

from codetree.client import ApiClient, Continuation, next_from_link_header
from codetree.errors import CodeTreeError
from codetree.models import EntryKind, Location, Tree
from codetree.tree.normalizer import normalize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TreeRequest:
    """How to list a tree on a given provider."""

    url: str
    params: dict[str, Any] = field(default_factory=dict)
    continuation: Continuation = next_from_link_header
    # Pulls the item list out of a page body; may raise TreeTooLarge
    items: Optional[Callable[[Any], Any]] = None
    # Statuses meaning "repository has no files"
    empty_statuses: tuple[int, ...] = ()


class TreeSource(Protocol):
    kind_map: dict[str, EntryKind]

    def tree_request(self, location: Location, dir_path: Optional[str] = None) -> TreeRequest: ...


class TreeFetcher:
    """Fetches full or per-directory trees, one in-flight call per key."""

    def __init__(self, provider: TreeSource, client: ApiClient):
        self.provider = provider
        self.client = client
        self._inflight: dict[tuple, asyncio.Future] = {}

    async def fetch_full(self, location: Location) -> Tree:
        """Every entry of ``location.ref``, all pages accumulated."""
        return await self._coalesced(
            (location.identity, location.ref, None),
            lambda: self._fetch(location, None),
        )

    async def fetch_children(self, location: Location, dir_path: str) -> Tree:
        """Immediate children of ``dir_path``."""
        dir_path = dir_path.strip("/")
        return await self._coalesced(
            (location.identity, location.ref, dir_path),
            lambda: self._fetch(location, dir_path),
        )

    async def _coalesced(self, key: tuple, factory: Callable[[], Awaitable[Tree]]) -> Tree:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._inflight[key] = task
            task.add_done_callback(lambda _: self._inflight.pop(key, None))
        else:
            logger.debug("Joining in-flight tree fetch for %s", key)
        return await asyncio.shield(task)

    async def _fetch(self, location: Location, dir_path: Optional[str]) -> Tree:
        if not location.ref:
            raise ValueError("Location must carry a resolved ref before fetching")

        request = self.provider.tree_request(location, dir_path)
        try:
            raw_items = await self.client.get_pages(
                request.url,
                params=request.params,
                continuation=request.continuation,
                items=request.items,
            )
        except CodeTreeError as e:
            if e.status_code is not None and e.status_code in request.empty_statuses:
                logger.info("%s@%s has no files", location.identity, location.ref)
                return []
            raise

        tree = normalize(raw_items, self.provider)
        logger.debug(
            "Fetched %d entries for %s@%s%s",
            len(tree), location.identity, location.ref,
            f" ({dir_path})" if dir_path is not None else "",
        )
        return tree
