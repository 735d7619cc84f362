"""Map provider tree items onto canonical tree entries."""

from typing import Any, Iterable, Mapping, Protocol

from pydantic import ValidationError

from codetree.errors import MalformedResponse
from codetree.models import EntryKind, Tree, TreeEntry
from codetree.models.payloads import RawTreeItem
from codetree.tree.ordering import sort_tree

# Vocabulary shared by git tree listings on both providers
GIT_KINDS: dict[str, EntryKind] = {
    "tree": EntryKind.DIRECTORY,
    "blob": EntryKind.FILE,
    "commit": EntryKind.SUBMODULE,
}


class KindVocabulary(Protocol):
    kind_map: Mapping[str, EntryKind]


def normalize_item(raw: Mapping[str, Any], kinds: Mapping[str, EntryKind]) -> TreeEntry:
    try:
        item = RawTreeItem.model_validate(raw)
    except ValidationError as e:
        raise MalformedResponse(f"Unexpected tree item: {e.error_count()} validation error(s)") from e

    return TreeEntry(
        path=item.path.strip("/"),
        # Anything unknown is shown but never expanded
        kind=kinds.get(item.type, EntryKind.SUBMODULE),
        content_id=item.content_id,
    )


def normalize(raw_items: Iterable[Mapping[str, Any]], provider: KindVocabulary) -> Tree:
    """Normalize raw listing items for ``provider`` into a sorted tree.

    Pure: no I/O, and normalizing the same item twice yields equal entries.
    """
    return sort_tree(normalize_item(raw, provider.kind_map) for raw in raw_items)
