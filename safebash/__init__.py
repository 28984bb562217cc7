"""
safe-bash - a command policy gate for Claude Code Bash tool calls.

Runs as a PreToolUse hook: every Bash command is checked against a fixed
built-in deny list and an optional, auto-updated patterns file before it
executes.

  pip install safe-bash-hook
  safe-bash install         : register the hook in ~/.claude/settings.json
  safe-bash check "rm -rf /": explain a verdict
"""

__version__ = "0.3.0"

__all__ = [
    "__version__",
]
