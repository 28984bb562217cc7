"""Runtime configuration for the safe-bash hook.

Everything is resolved from the environment on each invocation; there is
no config file of its own. The hook runs as a short-lived process, so
nothing here is cached.
"""

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_HOOKS_DIR = Path.home() / ".claude" / "hooks"
DEFAULT_PATTERNS_URL = (
    "https://raw.githubusercontent.com/apollo-com-ph/apollo-claude/main/safe-bash-patterns.json"
)
DEFAULT_UPDATE_INTERVAL = 3600  # 1 hour

PATTERNS_FILENAME = "safe-bash-patterns.json"
MARKER_FILENAME = "safe-bash-patterns.last_update"
LOG_FILENAME = "safe-bash-hook.log"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "") == "1"


def _env_interval(name: str, default: int) -> int:
    """Parse a positive integer of seconds, falling back to default.

    >>> _env_interval("SAFE_BASH_TEST_UNSET_VAR", 3600)
    3600
    """
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


@dataclass
class HookConfig:
    """Where the hook keeps its state and how it refreshes it."""

    hooks_dir: Path
    patterns_url: str = DEFAULT_PATTERNS_URL
    update_interval: int = DEFAULT_UPDATE_INTERVAL
    debug: bool = False
    auto_update: bool = True

    @classmethod
    def from_env(cls) -> "HookConfig":
        hooks_dir = os.environ.get("SAFE_BASH_HOOKS_DIR", "").strip()
        return cls(
            hooks_dir=Path(hooks_dir).expanduser() if hooks_dir else DEFAULT_HOOKS_DIR,
            patterns_url=os.environ.get("SAFE_BASH_PATTERNS_URL", "").strip() or DEFAULT_PATTERNS_URL,
            update_interval=_env_interval("SAFE_BASH_UPDATE_INTERVAL", DEFAULT_UPDATE_INTERVAL),
            debug=_env_flag("SAFE_BASH_HOOK_DEBUG"),
            auto_update=not _env_flag("SAFE_BASH_NO_UPDATE"),
        )

    @property
    def patterns_path(self) -> Path:
        return self.hooks_dir / PATTERNS_FILENAME

    @property
    def marker_path(self) -> Path:
        return self.hooks_dir / MARKER_FILENAME

    @property
    def log_path(self) -> Path:
        return self.hooks_dir / LOG_FILENAME
