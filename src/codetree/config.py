"""codetree configuration management.

Handles persistent client settings stored in ~/.codetree/config.json
"""

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path


# Default configuration values
DEFAULT_FALLBACK_BRANCH = "main"
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_TIMEOUT = 30.0
DEFAULT_PER_PAGE = 100
DEFAULT_HUGE_REPO_TTL_DAYS = 7
DEFAULT_MAX_HUGE_REPOS = 50
DEFAULT_OUTPUT_FORMAT = "text"  # text, json, yaml


@dataclass
class CodeTreeConfig:
    """codetree client configuration."""

    # Branch used when nothing better can be resolved
    fallback_branch: str = DEFAULT_FALLBACK_BRANCH

    # HTTP behaviour
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY
    respect_rate_limit: bool = True
    timeout: float = DEFAULT_TIMEOUT
    per_page: int = DEFAULT_PER_PAGE

    # Huge repository cache
    huge_repo_ttl_days: int = DEFAULT_HUGE_REPO_TTL_DAYS
    max_huge_repos: int = DEFAULT_MAX_HUGE_REPOS

    # CLI output
    output_format: str = DEFAULT_OUTPUT_FORMAT

    @classmethod
    def get_config_path(cls) -> Path:
        """Get the path to the config file."""
        return Path.home() / ".codetree" / "config.json"

    @classmethod
    def load(cls, path: Path | None = None) -> "CodeTreeConfig":
        """Load configuration from file, or return defaults if not found."""
        source = path or cls.get_config_path()
        if not source.exists():
            return cls()

        try:
            raw = json.loads(source.read_text(encoding="utf-8"))
            names = {field.name for field in fields(cls)}
            return cls(**{key: value for key, value in raw.items() if key in names})
        except (json.JSONDecodeError, TypeError, ValueError, AttributeError):
            return cls()

    def save(self, path: Path | None = None) -> None:
        """Write the settings as JSON, creating the directory if needed."""
        target = path or self.get_config_path()
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(asdict(self), indent=2), encoding="utf-8")

    def reset(self) -> None:
        """Restore every setting to its default."""
        for field in fields(self):
            setattr(self, field.name, getattr(CodeTreeConfig, field.name))


OUTPUT_FORMAT_OPTIONS = [
    ("text", "Indented text"),
    ("json", "JSON"),
    ("yaml", "YAML"),
]
