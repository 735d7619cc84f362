"""Canonical data types shared by every provider."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, Mapping, Optional


class EntryKind(str, Enum):
    """Kinds of tree entries."""

    DIRECTORY = "directory"
    FILE = "file"
    SUBMODULE = "submodule"  # rendered inertly, never expanded


class PatchAction(str, Enum):
    """What a review did to a file."""

    ADDED = "added"
    REMOVED = "removed"
    RENAMED = "renamed"
    MODIFIED = "modified"


class RouteType(str, Enum):
    """Page types recognised in a repository URL."""

    TREE = "tree"
    BLOB = "blob"
    REVIEW_CHANGES = "reviewChanges"
    COMMITS = "commits"
    NONE = "none"


@dataclass(frozen=True)
class Location:
    """Where the current page sits inside a repository."""

    owner: str
    repo: str
    ref: Optional[str] = None
    review_id: Optional[str] = None
    sub_path: Optional[str] = None
    provider_context: Mapping[str, str] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        for name in ("owner", "repo"):
            value = getattr(self, name)
            if not value or "/" in value:
                raise ValueError(f"Invalid {name}: {value!r}")

    @property
    def full_name(self) -> str:
        """Return owner/repo format."""
        return f"{self.owner}/{self.repo}"

    @property
    def identity(self) -> str:
        """Key identifying the repository across navigations."""
        return self.provider_context.get("project_path") or self.full_name

    @property
    def origin(self) -> str:
        return self.provider_context.get("origin", "")

    def with_ref(
        self,
        ref: str,
        sub_path: Optional[str] = None,
        review_id: Optional[str] = None,
    ) -> "Location":
        return replace(self, ref=ref, sub_path=sub_path, review_id=review_id)


@dataclass(frozen=True)
class PatchInfo:
    """Change summary for a file or, aggregated, for a directory."""

    action: Optional[PatchAction]
    additions: int = 0
    deletions: int = 0
    previous_path: Optional[str] = None
    files_changed: Optional[int] = None
    diff_id: Optional[int] = None


@dataclass(frozen=True)
class TreeEntry:
    """One node of a canonical tree."""

    path: str
    kind: EntryKind
    content_id: str = ""
    patch: Optional[PatchInfo] = None

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def parent(self) -> str:
        """Parent directory path, empty for root-level entries."""
        return self.path.rpartition("/")[0]

    @property
    def is_directory(self) -> bool:
        return self.kind is EntryKind.DIRECTORY


Tree = list[TreeEntry]


@dataclass(frozen=True)
class ChangedFile:
    """Provider-neutral record of one file touched by a review."""

    path: str
    action: PatchAction = PatchAction.MODIFIED
    previous_path: Optional[str] = None
    diff: Optional[str] = None
    additions: Optional[int] = None
    deletions: Optional[int] = None
    content_id: str = ""


@dataclass(frozen=True)
class DomSnapshot:
    """Read-only DOM hints captured by the page, keyed by CSS selector.

    A selector is present when the page matched it; its value is the text
    (or relevant attribute) of the first matching element.
    """

    elements: Mapping[str, str] = field(default_factory=dict)

    def has(self, selector: str) -> bool:
        return selector in self.elements

    def first(self, selectors: Iterable[str]) -> Optional[str]:
        """Return the first non-empty value among ``selectors``."""
        for selector in selectors:
            value = (self.elements.get(selector) or "").strip()
            if value:
                return value
        return None


@dataclass(frozen=True)
class Route:
    """Output of a provider's route parser. Never carries a resolved ref."""

    location: Location
    type: RouteType = RouteType.NONE
    remainder: str = ""
    review_id: Optional[str] = None


@dataclass
class NavigationResult:
    """Everything a tree view needs after one navigation."""

    location: Location
    tree: Tree
    lazy: bool = False
    submodules: dict[str, str] = field(default_factory=dict)
