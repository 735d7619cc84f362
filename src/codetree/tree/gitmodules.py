"""Parser for ``.gitmodules`` files."""

import re

_SECTION_RE = re.compile(r'^\s*\[submodule\s+"(?P<name>[^"]*)"\s*\]\s*$')
_OPTION_RE = re.compile(r"^\s*(?P<key>[\w.-]+)\s*=\s*(?P<value>.*?)\s*$")


def parse_gitmodules(content: str) -> dict[str, str]:
    """Return a mapping of submodule path to its remote URL.

    Sections missing either a path or a url are skipped.
    """
    submodules: dict[str, str] = {}
    current: dict[str, str] | None = None
    sections: list[dict[str, str]] = []

    for line in content.splitlines():
        if not line.strip() or line.lstrip().startswith(("#", ";")):
            continue
        if _SECTION_RE.match(line):
            current = {}
            sections.append(current)
            continue
        match = _OPTION_RE.match(line)
        if match and current is not None:
            current[match.group("key").lower()] = match.group("value")

    for section in sections:
        path = section.get("path", "").strip("/")
        url = section.get("url")
        if path and url:
            submodules[path] = url
    return submodules
