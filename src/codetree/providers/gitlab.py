"""GitLab (gitlab.com and self-managed) adapter.

URL grammar: ``/group[/subgroup...]/project[/-/type[/ref-and-path]]``. The
project path may be nested, so ``owner`` holds the top-level namespace and
the full path travels in ``provider_context["project_path"]``.
"""

import logging
import re
from typing import Optional
from urllib.parse import quote, unquote, urlparse

from pydantic import ValidationError

from codetree.client import ApiClient, next_from_page_header
from codetree.config import CodeTreeConfig, DEFAULT_PER_PAGE
from codetree.errors import MalformedResponse, NotApplicable, RefNotFound
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
from codetree.models.payloads import GitLabChanges, GitLabMergeRequest, RepositoryInfo
from codetree.providers import base
from codetree.store import KeyValueStore
from codetree.tree import GIT_KINDS, TreeFetcher, TreeRequest, classify_action

logger = logging.getLogger(__name__)

GITLAB_HOST = "gitlab.com"

# Present on every page GitLab renders, whatever the host
GENERATOR_SELECTOR = 'meta[content="GitLab"]'

RESERVED_USER_NAMES = frozenset({
    "admin", "dashboard", "explore", "groups", "help",
    "projects", "search", "snippets", "users", "-",
})

REF_SELECTORS = (
    ".ref-selector .gl-button-text",
    '[data-testid="branches-select"] button',
    ".dropdown-toggle-text",
    ".ref-name",
    "[data-ref]",
)

ROUTE_TYPES = {
    "tree": RouteType.TREE,
    "blob": RouteType.BLOB,
    "merge_requests": RouteType.REVIEW_CHANGES,
    "commit": RouteType.COMMITS,
    "commits": RouteType.COMMITS,
}

_ROUTE_RE = re.compile(r"^(?P<type>[^/]+)(?:/(?P<rest>.*))?$")


class GitLabProvider:
    """Adapter for a GitLab host."""

    name = "gitlab"
    kind_map = dict(GIT_KINDS)
    ref_selectors = REF_SELECTORS

    def __init__(
        self,
        hostname: str = GITLAB_HOST,
        scheme: str = "https",
        per_page: int = DEFAULT_PER_PAGE,
        port: Optional[int] = None,
    ):
        self.hostname = hostname
        self.scheme = scheme
        self.per_page = per_page
        self.port = port

    def __repr__(self) -> str:
        return f"GitLabProvider({self.hostname!r})"

    @property
    def origin(self) -> str:
        netloc = f"{self.hostname}:{self.port}" if self.port else self.hostname
        return f"{self.scheme}://{netloc}"

    @property
    def api_root(self) -> str:
        return f"{self.origin}/api/v4"

    def detect(self, hostname: str) -> bool:
        return hostname == self.hostname

    def get_default_create_token_url(self) -> str:
        return f"{self.origin}/-/user_settings/personal_access_tokens"

    def auth_headers(self, token: Optional[str]) -> dict[str, str]:
        return {"PRIVATE-TOKEN": token} if token else {}

    # Route parsing

    def parse_route(self, url: str, dom: Optional[DomSnapshot] = None) -> Route:
        path = unquote(urlparse(url).path).lstrip("/")
        project_path, _, route = path.partition("/-/")

        segments = [s for s in project_path.split("/") if s]
        if len(segments) < 2:
            raise NotApplicable(f"Not a project page: {url}")
        if segments[0] in RESERVED_USER_NAMES:
            raise NotApplicable(f"Reserved path: {url}")

        location = Location(
            owner=segments[0],
            repo=segments[-1],
            provider_context={"origin": self.origin, "project_path": "/".join(segments)},
        )

        match = _ROUTE_RE.match(route.strip("/"))
        if not match:
            return Route(location=location)
        return base.make_route(location, match.group("type"), match.group("rest") or "", ROUTE_TYPES)

    # API primitives

    def _project_path(self, location: Location) -> str:
        return f"/projects/{quote(location.identity, safe='')}"

    def tree_request(self, location: Location, dir_path: Optional[str] = None) -> TreeRequest:
        params: dict = {"ref": location.ref, "per_page": self.per_page}
        if dir_path is None:
            params["recursive"] = "true"
        elif dir_path:
            params["path"] = dir_path
        return TreeRequest(
            url=f"{self._project_path(location)}/repository/tree",
            params=params,
            continuation=next_from_page_header,
        )

    async def branch_exists(self, client: ApiClient, location: Location, name: str) -> bool:
        try:
            await client.get(f"{self._project_path(location)}/repository/branches/{quote(name, safe='')}")
        except RefNotFound:
            return False
        return True

    async def get_default_branch(self, client: ApiClient, location: Location) -> Optional[str]:
        data = await client.get_json(self._project_path(location))
        try:
            return RepositoryInfo.model_validate(data).default_branch
        except ValidationError as e:
            raise MalformedResponse(f"Unexpected project payload for {location.identity}") from e

    async def get_review_target_branch(
        self, client: ApiClient, location: Location, review_id: str
    ) -> Optional[str]:
        data = await client.get_json(f"{self._project_path(location)}/merge_requests/{review_id}")
        try:
            return GitLabMergeRequest.model_validate(data).target_branch
        except ValidationError as e:
            raise MalformedResponse(f"Unexpected merge request payload for !{review_id}") from e

    async def list_changes(self, client: ApiClient, location: Location) -> list[ChangedFile]:
        data = await client.get_json(
            f"{self._project_path(location)}/merge_requests/{location.review_id}/changes"
        )
        try:
            changes = GitLabChanges.model_validate(data).changes
        except ValidationError as e:
            raise MalformedResponse(f"Unexpected changes payload for !{location.review_id}") from e

        return [
            ChangedFile(
                path=change.new_path,
                action=classify_action(change.new_file, change.deleted_file, change.renamed_file),
                previous_path=change.old_path if change.renamed_file else None,
                diff=change.diff,
                content_id=change.blob_id or "",
            )
            for change in changes
        ]

    async def read_blob(self, client: ApiClient, location: Location, content_id: str) -> str:
        response = await client.get(f"{self._project_path(location)}/repository/blobs/{content_id}/raw")
        return response.text

    # Adapter operations

    def should_load_entire_tree(
        self, location: Location, store: KeyValueStore, config: CodeTreeConfig
    ) -> bool:
        return base.should_load_entire_tree(location, store, config)

    async def get_tree(
        self,
        client: ApiClient,
        fetcher: TreeFetcher,
        location: Location,
        dir_path: Optional[str] = None,
    ) -> Tree:
        return await base.get_tree(self, client, fetcher, location, dir_path)

    async def get_submodules(self, client: ApiClient, location: Location, tree: Tree) -> dict[str, str]:
        return await base.get_submodules(self, client, location, tree)

    def build_item_url(self, location: Location, entry: TreeEntry) -> str:
        item_type = "tree" if entry.kind is not EntryKind.FILE else "blob"
        return (
            f"{self.origin}/{location.identity}/-/{item_type}/"
            f"{quote(location.ref or '', safe='')}/{quote(entry.path)}"
        )

    def build_diff_url(self, location: Location, entry: TreeEntry) -> str:
        diff_id = entry.patch.diff_id if entry.patch and entry.patch.diff_id is not None else 0
        return (
            f"{self.origin}/{location.identity}/-/merge_requests/{location.review_id}"
            f"/diffs#diff-content-{diff_id}"
        )
