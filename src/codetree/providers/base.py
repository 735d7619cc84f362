"""Capability contract every provider adapter implements.

Providers do not share a base class. Behaviour common to all of them lives in
the module-level functions below, which each adapter delegates to.
"""

import logging
import re
from typing import Mapping, Optional, Protocol, runtime_checkable

from codetree.client import ApiClient
from codetree.config import CodeTreeConfig
from codetree.errors import CodeTreeError
from codetree.models import (
    ChangedFile,
    DomSnapshot,
    EntryKind,
    Location,
    Route,
    RouteType,
    Tree,
    TreeEntry,
)
from codetree.store import KeyValueStore, StoreKey, touch_huge_repo
from codetree.tree import TreeFetcher, TreeRequest, build_from_changes, parse_gitmodules

logger = logging.getLogger(__name__)

_GITMODULES_RE = re.compile(r"^\.gitmodules$", re.IGNORECASE)
_REVIEW_ID_RE = re.compile(r"^(\d+)")


@runtime_checkable
class Provider(Protocol):
    """Operations the rest of codetree expects from a provider adapter."""

    name: str
    hostname: str
    kind_map: Mapping[str, EntryKind]
    ref_selectors: tuple[str, ...]

    @property
    def origin(self) -> str: ...

    @property
    def api_root(self) -> str: ...

    def detect(self, hostname: str) -> bool: ...

    def get_default_create_token_url(self) -> str: ...

    def auth_headers(self, token: Optional[str]) -> dict[str, str]: ...

    def parse_route(self, url: str, dom: Optional[DomSnapshot] = None) -> Route: ...

    def tree_request(self, location: Location, dir_path: Optional[str] = None) -> TreeRequest: ...

    async def branch_exists(self, client: ApiClient, location: Location, name: str) -> bool: ...

    async def get_default_branch(self, client: ApiClient, location: Location) -> Optional[str]: ...

    async def get_review_target_branch(
        self, client: ApiClient, location: Location, review_id: str
    ) -> Optional[str]: ...

    async def list_changes(self, client: ApiClient, location: Location) -> list[ChangedFile]: ...

    async def read_blob(self, client: ApiClient, location: Location, content_id: str) -> str: ...

    def should_load_entire_tree(
        self, location: Location, store: KeyValueStore, config: CodeTreeConfig
    ) -> bool: ...

    async def get_tree(
        self,
        client: ApiClient,
        fetcher: TreeFetcher,
        location: Location,
        dir_path: Optional[str] = None,
    ) -> Tree: ...

    async def get_submodules(
        self, client: ApiClient, location: Location, tree: Tree
    ) -> dict[str, str]: ...

    def build_item_url(self, location: Location, entry: TreeEntry) -> str: ...

    def build_diff_url(self, location: Location, entry: TreeEntry) -> str: ...


def make_route(
    location: Location,
    type_segment: str,
    remainder: str,
    route_types: Mapping[str, RouteType],
) -> Route:
    """Classify a route segment and trim the remainder to what matters."""
    route_type = route_types.get(type_segment, RouteType.NONE)

    if route_type is RouteType.REVIEW_CHANGES:
        match = _REVIEW_ID_RE.match(remainder)
        if not match:
            return Route(location=location)
        return Route(location=location, type=route_type, review_id=match.group(1))

    if route_type is RouteType.NONE:
        return Route(location=location)

    return Route(location=location, type=route_type, remainder=remainder.strip("/"))


def should_load_entire_tree(
    location: Location,
    store: KeyValueStore,
    config: CodeTreeConfig,
) -> bool:
    """Decide between a recursive listing and lazy per-directory loading."""
    if location.review_id and store.get(StoreKey.PR):
        return True
    if store.get(StoreKey.LAZYLOAD):
        return False
    return not touch_huge_repo(store, location.identity, config.huge_repo_ttl_days)


async def get_tree(
    provider: Provider,
    client: ApiClient,
    fetcher: TreeFetcher,
    location: Location,
    dir_path: Optional[str] = None,
) -> Tree:
    """Dispatch to the diff-tree builder in review mode, else to the fetcher."""
    if location.review_id:
        tree = build_from_changes(await provider.list_changes(client, location))
        if dir_path is None:
            return tree
        parent = dir_path.strip("/")
        return [entry for entry in tree if entry.parent == parent]

    if dir_path is None:
        return await fetcher.fetch_full(location)
    return await fetcher.fetch_children(location, dir_path)


async def get_submodules(
    provider: Provider,
    client: ApiClient,
    location: Location,
    tree: Tree,
) -> dict[str, str]:
    """Map submodule paths to their remote URL using ``.gitmodules``."""
    item = next((entry for entry in tree if _GITMODULES_RE.match(entry.path)), None)
    if item is None or not item.content_id:
        return {}

    try:
        content = await provider.read_blob(client, location, item.content_id)
    except CodeTreeError as e:
        logger.warning("Could not read .gitmodules for %s: %s", location.identity, e)
        return {}
    return parse_gitmodules(content)
