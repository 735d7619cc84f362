"""Tree ordering."""

from typing import Iterable

from codetree.models import Tree, TreeEntry


def path_key(path: str) -> tuple[str, ...]:
    """Sort key placing a directory before its descendants.

    Comparing segment tuples rather than raw strings keeps every subtree
    contiguous: ``ab``, ``ab/c``, ``ab-x``, ``abc``.
    """
    return tuple(path.split("/"))


def sort_tree(entries: Iterable[TreeEntry]) -> Tree:
    return sorted(entries, key=lambda entry: path_key(entry.path))
