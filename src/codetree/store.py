"""Key-value store contract and the implementations shipped with codetree.

The store belongs to the embedding application. codetree only reads access
tokens, a handful of boolean preferences, the list of self-hosted instances
and the cache of repositories known to be too large for a recursive listing.
"""

import json
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Protocol
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

Listener = Callable[[str, Any, Any], None]

DAY_MS = 24 * 60 * 60 * 1000


class StoreKey:
    """Keys codetree reads from the store."""

    TOKEN = "codetree.access_token"  # legacy, any host
    GITHUB_TOKEN = "codetree.github_token"
    GITLAB_TOKEN = "codetree.gitlab_token"
    LAZYLOAD = "codetree.lazyload"
    HUGE_REPOS = "codetree.huge_repos"
    PR = "codetree.pr"  # only show changed files in review pages
    CUSTOM_INSTANCES = "codetree.custom_instances"


DEFAULTS: dict[str, Any] = {
    StoreKey.TOKEN: None,
    StoreKey.GITHUB_TOKEN: None,
    StoreKey.GITLAB_TOKEN: None,
    StoreKey.LAZYLOAD: False,
    StoreKey.HUGE_REPOS: {},
    StoreKey.PR: True,
    StoreKey.CUSTOM_INSTANCES: [],
}


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def subscribe(self, listener: Listener) -> Callable[[], None]: ...


class MemoryStore:
    """In-process store with change notifications."""

    def __init__(self, values: Optional[dict[str, Any]] = None):
        self._values: dict[str, Any] = {**DEFAULTS, **(values or {})}
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def get(self, key: str) -> Any:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            old = self._values.get(key)
            self._values[key] = value
            listeners = list(self._listeners)
        if old != value:
            for listener in listeners:
                listener(key, old, value)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function removing it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe


class JsonFileStore(MemoryStore):
    """MemoryStore persisted to ~/.codetree/store.json on every write."""

    def __init__(self, path: Optional[Path] = None):
        self.path = path or Path.home() / ".codetree" / "store.json"
        super().__init__(self._read())

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable store %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if k in DEFAULTS}

    def set(self, key: str, value: Any) -> None:
        super().set(key, value)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock, open(self.path, "w", encoding="utf-8") as f:
            json.dump(self._values, f, indent=2)


@dataclass(frozen=True)
class CustomInstance:
    """A self-hosted GitHub Enterprise or GitLab instance."""

    url: str
    type: str  # "github" or "gitlab"
    token: Optional[str] = None

    @property
    def hostname(self) -> str:
        return urlparse(self.url).hostname or ""

    @classmethod
    def from_dict(cls, data: dict) -> Optional["CustomInstance"]:
        url = data.get("url")
        if not url or not urlparse(url).hostname:
            return None
        return cls(url=url, type=data.get("type") or "github", token=data.get("token") or None)


def get_custom_instances(store: KeyValueStore) -> list[CustomInstance]:
    raw = store.get(StoreKey.CUSTOM_INSTANCES)
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            raw = []
    instances = []
    for item in raw or []:
        if isinstance(item, dict):
            instance = CustomInstance.from_dict(item)
            if instance is not None:
                instances.append(instance)
    return instances


def get_access_token(store: KeyValueStore, hostname: str) -> Optional[str]:
    """Return the access token to use for ``hostname``, if any.

    Custom instances win, then the per-provider tokens for the public hosts,
    then the legacy token.
    """
    for instance in get_custom_instances(store):
        if instance.hostname == hostname and instance.token:
            return instance.token

    if hostname == "github.com":
        return store.get(StoreKey.GITHUB_TOKEN) or store.get(StoreKey.TOKEN)
    if hostname == "gitlab.com":
        return store.get(StoreKey.GITLAB_TOKEN)

    return store.get(StoreKey.TOKEN)


def _now_ms() -> int:
    return int(time.time() * 1000)


def is_valid_timestamp(timestamp: Any, ttl_days: int) -> bool:
    return isinstance(timestamp, (int, float)) and _now_ms() - timestamp < ttl_days * DAY_MS


def touch_huge_repo(store: KeyValueStore, key: str, ttl_days: int) -> bool:
    """Return True if ``key`` is a known huge repository, refreshing its stamp."""
    huge_repos = dict(store.get(StoreKey.HUGE_REPOS) or {})
    if key not in huge_repos:
        return False
    if not is_valid_timestamp(huge_repos[key], ttl_days):
        del huge_repos[key]
        store.set(StoreKey.HUGE_REPOS, huge_repos)
        return False
    huge_repos[key] = _now_ms()
    store.set(StoreKey.HUGE_REPOS, huge_repos)
    return True


def record_huge_repo(store: KeyValueStore, key: str, max_entries: int) -> None:
    """Remember ``key`` as huge, keeping only the newest ``max_entries``."""
    huge_repos = dict(store.get(StoreKey.HUGE_REPOS) or {})
    huge_repos.pop(key, None)
    newest = sorted(huge_repos.items(), key=lambda kv: kv[1], reverse=True)
    huge_repos = dict(newest[: max(max_entries - 1, 0)])
    huge_repos[key] = _now_ms()
    store.set(StoreKey.HUGE_REPOS, huge_repos)
    logger.info("Recorded %s as a huge repository", key)
