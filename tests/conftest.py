"""Shared fixtures for safe-bash tests."""

import json

import pytest

from safebash.config import HookConfig
from safebash.rules import compile_builtin, load_user


_ENV_VARS = (
    "SAFE_BASH_HOOKS_DIR",
    "SAFE_BASH_PATTERNS_URL",
    "SAFE_BASH_UPDATE_INTERVAL",
    "SAFE_BASH_HOOK_DEBUG",
    "SAFE_BASH_NO_UPDATE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """No test sees the developer's own safe-bash environment."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def hooks_dir(tmp_path):
    return tmp_path / "hooks"


@pytest.fixture
def hook_config(hooks_dir):
    """HookConfig rooted in a temp dir with auto-update off (nothing spawns)."""
    return HookConfig(hooks_dir=hooks_dir, auto_update=False)


@pytest.fixture
def builtin():
    return compile_builtin()


@pytest.fixture
def make_rules():
    """Factory building a user RuleSet from deny/allow (pattern, reason) pairs."""
    def _create(deny=(), allow=(), version=1):
        return load_user(json.dumps({
            "version": version,
            "deny": [{"pattern": p, "reason": r} for p, r in deny],
            "allow": [{"pattern": p, "reason": r} for p, r in allow],
        }))
    return _create


@pytest.fixture
def write_patterns(hooks_dir):
    """Factory writing a patterns document into the hooks dir."""
    def _write(document):
        hooks_dir.mkdir(parents=True, exist_ok=True)
        path = hooks_dir / "safe-bash-patterns.json"
        if isinstance(document, (dict, list)):
            document = json.dumps(document)
        if isinstance(document, bytes):
            path.write_bytes(document)
        else:
            path.write_text(document, encoding="utf-8")
        return path
    return _write
