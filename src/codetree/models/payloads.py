"""Pydantic models for the raw API payloads codetree consumes.

Only the fields codetree reads are declared; everything else is ignored.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class RawTreeItem(_Payload):
    """Item of a tree or directory listing.

    GitHub trees carry ``sha``, GitLab trees carry ``id``.
    """

    path: str
    type: str
    sha: Optional[str] = None
    id: Optional[str] = None

    @property
    def content_id(self) -> str:
        return self.sha or self.id or ""


class GitHubTreeResponse(_Payload):
    sha: Optional[str] = None
    tree: list[dict] = []
    truncated: bool = False


class GitHubRef(_Payload):
    ref: str


class GitHubPullRequest(_Payload):
    number: int
    base: GitHubRef


class GitHubPullFile(_Payload):
    filename: str
    status: str = "modified"
    sha: Optional[str] = None
    additions: Optional[int] = None
    deletions: Optional[int] = None
    patch: Optional[str] = None
    previous_filename: Optional[str] = None


class GitHubBlob(_Payload):
    content: str = ""
    encoding: str = "base64"


class RepositoryInfo(_Payload):
    """Repository metadata; both providers expose ``default_branch``."""

    default_branch: Optional[str] = None


class GitLabMergeRequest(_Payload):
    iid: Optional[int] = None
    target_branch: Optional[str] = None


class GitLabChange(_Payload):
    old_path: Optional[str] = None
    new_path: str
    new_file: bool = False
    deleted_file: bool = False
    renamed_file: bool = False
    diff: Optional[str] = None
    blob_id: Optional[str] = None


class GitLabChanges(_Payload):
    changes: list[GitLabChange] = []
