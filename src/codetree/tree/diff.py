"""Build a synthetic tree from the files changed by a pull/merge request.

Review mode never lists the repository; the tree consists of the changed
files plus every directory enclosing them, each directory carrying the sum of
its descendants' line counts and the number of files changed beneath it.
"""

import logging
from typing import Iterable, Optional

from codetree.models import ChangedFile, EntryKind, PatchAction, PatchInfo, Tree, TreeEntry
from codetree.tree.ordering import sort_tree

logger = logging.getLogger(__name__)


def classify_action(
    new_file: bool = False,
    deleted_file: bool = False,
    renamed_file: bool = False,
) -> PatchAction:
    if new_file:
        return PatchAction.ADDED
    if deleted_file:
        return PatchAction.REMOVED
    if renamed_file:
        return PatchAction.RENAMED
    return PatchAction.MODIFIED


def count_changes(diff: Optional[str]) -> tuple[int, int]:
    """Count added and removed lines of a unified diff body.

    ``+++``/``---`` header lines are not content changes.
    """
    additions = deletions = 0
    for line in (diff or "").split("\n"):
        if line.startswith("+") and not line.startswith("+++"):
            additions += 1
        elif line.startswith("-") and not line.startswith("---"):
            deletions += 1
    return additions, deletions


def ancestors(path: str) -> list[str]:
    """Ancestor directories of ``path``, outermost first, root excluded."""
    parts = path.split("/")[:-1]
    return ["/".join(parts[: i + 1]) for i in range(len(parts))]


def build_from_changes(changed_files: Iterable[ChangedFile]) -> Tree:
    entries: dict[str, TreeEntry] = {}
    # path -> [additions, deletions, files_changed]
    folders: dict[str, list[int]] = {}

    for diff_id, changed in enumerate(changed_files):
        path = changed.path.strip("/")
        counted_additions, counted_deletions = count_changes(changed.diff)
        additions = changed.additions if changed.additions is not None else counted_additions
        deletions = changed.deletions if changed.deletions is not None else counted_deletions

        entries[path] = TreeEntry(
            path=path,
            kind=EntryKind.FILE,
            content_id=changed.content_id,
            patch=PatchInfo(
                action=changed.action,
                additions=additions,
                deletions=deletions,
                previous_path=changed.previous_path if changed.action is PatchAction.RENAMED else None,
                diff_id=diff_id,
            ),
        )

    # Aggregate after collecting so a path listed twice is only counted once
    for entry in entries.values():
        for folder in ancestors(entry.path):
            totals = folders.setdefault(folder, [0, 0, 0])
            totals[0] += entry.patch.additions
            totals[1] += entry.patch.deletions
            totals[2] += 1

    directories = []
    for folder, (additions, deletions, files_changed) in folders.items():
        if folder in entries:
            logger.debug("%s changed both as a file and as a directory", folder)
        directories.append(TreeEntry(
            path=folder,
            kind=EntryKind.DIRECTORY,
            patch=PatchInfo(
                action=None,
                additions=additions,
                deletions=deletions,
                files_changed=files_changed,
            ),
        ))

    # A file and a directory sharing a path are both kept, the file first
    return sort_tree([*entries.values(), *directories])
