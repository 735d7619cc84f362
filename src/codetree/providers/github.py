"""GitHub and GitHub Enterprise adapter.

URL grammar: ``/owner/repo[/type[/ref-and-path]]``. Trees come from the git
trees API: recursive for whole repositories (possibly truncated for huge
ones), the non-recursive tree of ``ref:path`` for a single directory. Review
mode reads the pull request's file list.
"""

import base64
import binascii
import hashlib
import logging
from typing import Any, Callable, Optional
from urllib.parse import quote, unquote, urlparse

from pydantic import ValidationError

from codetree.client import ApiClient, next_from_link_header
from codetree.config import CodeTreeConfig, DEFAULT_PER_PAGE
from codetree.errors import MalformedResponse, NotApplicable, RefNotFound, TreeTooLarge
from codetree.models import (
    ChangedFile,
    DomSnapshot,
    EntryKind,
    Location,
    PatchAction,
    Route,
    RouteType,
    Tree,
    TreeEntry,
)
from codetree.models.payloads import (
    GitHubBlob,
    GitHubPullFile,
    GitHubPullRequest,
    GitHubTreeResponse,
    RepositoryInfo,
)
from codetree.providers import base
from codetree.store import KeyValueStore
from codetree.tree import GIT_KINDS, TreeFetcher, TreeRequest

logger = logging.getLogger(__name__)

GITHUB_HOST = "github.com"
GITHUB_API = "https://api.github.com"

RESERVED_USER_NAMES = frozenset({
    "about", "account", "blog", "business", "contact", "dashboard",
    "developer", "explore", "features", "gist", "integrations", "issues",
    "join", "login", "marketplace", "mirrors", "new", "notifications",
    "open-source", "organizations", "orgs", "personal", "pricing", "pulls",
    "search", "security", "sessions", "settings", "showcases", "site",
    "sponsors", "stars", "styleguide", "topics", "trending", "watching",
})
RESERVED_REPO_NAMES = frozenset({"followers", "following", "repositories"})

# Page variants on which the feature stays off
NOT_FOUND_SELECTOR = "#parallax_wrapper"
RAW_CONTENT_SELECTOR = "body > pre"

REF_SELECTORS = (
    "#branch-picker-repos-header-ref-selector",
    ".ref-selector-button-text-container",
    ".branch-select-menu .css-truncate-target",
    '[data-hotkey="w"] .css-truncate-target',
)

ROUTE_TYPES = {
    "tree": RouteType.TREE,
    "blob": RouteType.BLOB,
    "pull": RouteType.REVIEW_CHANGES,
    "commit": RouteType.COMMITS,
    "commits": RouteType.COMMITS,
}

PULL_FILE_STATUS = {
    "added": PatchAction.ADDED,
    "removed": PatchAction.REMOVED,
    "renamed": PatchAction.RENAMED,
}


def _tree_items(body: Any) -> list:
    try:
        response = GitHubTreeResponse.model_validate(body)
    except ValidationError as e:
        raise MalformedResponse(f"Unexpected git tree payload: {e.error_count()} error(s)") from e
    if response.truncated:
        raise TreeTooLarge("GitHub truncated the recursive tree listing")
    return response.tree


def _directory_items(dir_path: str) -> Callable[[Any], list]:
    """Items of one non-recursive tree, with paths made relative to the root."""

    def items(body: Any) -> list:
        try:
            response = GitHubTreeResponse.model_validate(body)
        except ValidationError as e:
            raise MalformedResponse(f"Unexpected git tree payload: {e.error_count()} error(s)") from e
        if response.truncated:
            logger.warning("GitHub truncated the listing of %s", dir_path or "/")
        if not dir_path:
            return response.tree
        return [
            {**item, "path": f"{dir_path}/{item['path']}"} if "path" in item else item
            for item in response.tree
        ]

    return items


class GitHubProvider:
    """Adapter for github.com or a GitHub Enterprise host."""

    name = "github"
    kind_map = GIT_KINDS
    ref_selectors = REF_SELECTORS

    def __init__(
        self,
        hostname: str = GITHUB_HOST,
        scheme: str = "https",
        per_page: int = DEFAULT_PER_PAGE,
        port: Optional[int] = None,
    ):
        self.hostname = hostname
        self.scheme = scheme
        self.per_page = per_page
        self.port = port

    def __repr__(self) -> str:
        return f"GitHubProvider({self.hostname!r})"

    @property
    def origin(self) -> str:
        netloc = f"{self.hostname}:{self.port}" if self.port else self.hostname
        return f"{self.scheme}://{netloc}"

    @property
    def api_root(self) -> str:
        if self.hostname == GITHUB_HOST:
            return GITHUB_API
        return f"{self.origin}/api/v3"

    def detect(self, hostname: str) -> bool:
        return hostname == self.hostname

    def get_default_create_token_url(self) -> str:
        return f"{self.origin}/settings/tokens/new?scopes=repo&description=codetree"

    def auth_headers(self, token: Optional[str]) -> dict[str, str]:
        return {"Authorization": f"token {token}"} if token else {}

    # Route parsing

    def parse_route(self, url: str, dom: Optional[DomSnapshot] = None) -> Route:
        dom = dom or DomSnapshot()
        if dom.has(NOT_FOUND_SELECTOR) or dom.has(RAW_CONTENT_SELECTOR):
            raise NotApplicable("Not found or raw content page")

        segments = [unquote(s) for s in urlparse(url).path.split("/") if s]
        if len(segments) < 2:
            raise NotApplicable(f"Not a repository page: {url}")

        owner, repo = segments[0], segments[1]
        if owner in RESERVED_USER_NAMES or repo in RESERVED_REPO_NAMES:
            raise NotApplicable(f"Reserved path: {url}")

        location = Location(owner=owner, repo=repo, provider_context={"origin": self.origin})
        type_segment = segments[2] if len(segments) > 2 else ""
        return base.make_route(location, type_segment, "/".join(segments[3:]), ROUTE_TYPES)

    # API primitives

    def _repo_path(self, location: Location) -> str:
        return f"/repos/{quote(location.owner)}/{quote(location.repo)}"

    def tree_request(self, location: Location, dir_path: Optional[str] = None) -> TreeRequest:
        repo_path = self._repo_path(location)
        if dir_path is None:
            return TreeRequest(
                url=f"{repo_path}/git/trees/{quote(location.ref, safe='')}",
                params={"recursive": 1},
                items=_tree_items,
                # An empty repository has no git tree at all
                empty_statuses=(409,),
            )
        tree_ish = quote(location.ref, safe="")
        if dir_path:
            tree_ish = f"{tree_ish}:{quote(dir_path)}"
        return TreeRequest(
            url=f"{repo_path}/git/trees/{tree_ish}",
            items=_directory_items(dir_path),
            empty_statuses=(409,),
        )

    async def branch_exists(self, client: ApiClient, location: Location, name: str) -> bool:
        try:
            await client.get(f"{self._repo_path(location)}/branches/{quote(name, safe='')}")
        except RefNotFound:
            return False
        return True

    async def get_default_branch(self, client: ApiClient, location: Location) -> Optional[str]:
        data = await client.get_json(self._repo_path(location))
        try:
            return RepositoryInfo.model_validate(data).default_branch
        except ValidationError as e:
            raise MalformedResponse(f"Unexpected repository payload for {location.full_name}") from e

    async def get_review_target_branch(
        self, client: ApiClient, location: Location, review_id: str
    ) -> Optional[str]:
        data = await client.get_json(f"{self._repo_path(location)}/pulls/{review_id}")
        try:
            return GitHubPullRequest.model_validate(data).base.ref
        except ValidationError as e:
            raise MalformedResponse(f"Unexpected pull request payload for #{review_id}") from e

    async def list_changes(self, client: ApiClient, location: Location) -> list[ChangedFile]:
        raw_files = await client.get_pages(
            f"{self._repo_path(location)}/pulls/{location.review_id}/files",
            params={"per_page": self.per_page},
            continuation=next_from_link_header,
        )
        try:
            files = [GitHubPullFile.model_validate(item) for item in raw_files]
        except ValidationError as e:
            raise MalformedResponse(f"Unexpected pull request files for #{location.review_id}") from e

        return [
            ChangedFile(
                path=f.filename,
                action=PULL_FILE_STATUS.get(f.status, PatchAction.MODIFIED),
                previous_path=f.previous_filename,
                diff=f.patch,
                additions=f.additions,
                deletions=f.deletions,
                content_id=f.sha or "",
            )
            for f in files
        ]

    async def read_blob(self, client: ApiClient, location: Location, content_id: str) -> str:
        data = await client.get_json(f"{self._repo_path(location)}/git/blobs/{content_id}")
        try:
            blob = GitHubBlob.model_validate(data)
            if blob.encoding != "base64":
                return blob.content
            return base64.b64decode(blob.content).decode("utf-8")
        except (ValidationError, binascii.Error, UnicodeDecodeError) as e:
            raise MalformedResponse(f"Unreadable blob {content_id}") from e

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
            f"{self.origin}/{location.owner}/{location.repo}/{item_type}/"
            f"{quote(location.ref or '', safe='')}/{quote(entry.path)}"
        )

    def build_diff_url(self, location: Location, entry: TreeEntry) -> str:
        anchor = hashlib.sha256(entry.path.encode("utf-8")).hexdigest()
        return f"{self.origin}/{location.owner}/{location.repo}/pull/{location.review_id}/files#diff-{anchor}"
