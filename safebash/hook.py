#!/usr/bin/env python3
"""safe-bash PreToolUse hook for Claude Code.

Reads one JSON envelope from stdin and exits with the verdict:
  exit 0 : allow (also every malformed/irrelevant input: fail open)
  exit 2 : deny, with ``Blocked: <reason>`` on stderr

Only Bash tool calls with a string ``tool_input.command`` are evaluated.
"""

import json
import logging
import sys
from typing import Optional

from safebash.config import HookConfig
from safebash.log import setup_hook_logging
from safebash.policy import Deny, Verdict, decide
from safebash.refresh import maybe_refresh
from safebash.rules import compile_builtin, load_user_file

logger = logging.getLogger(__name__)

BASH_TOOL = "Bash"
EXIT_ALLOW = 0
EXIT_DENY = 2


def extract_command(raw: str) -> Optional[str]:
    """Pull the Bash command out of a hook envelope, or None to pass through.

    >>> extract_command('{"tool_name": "Bash", "tool_input": {"command": "ls"}}')
    'ls'
    >>> extract_command('{"tool_name": "Read", "tool_input": {"file_path": "x"}}') is None
    True
    >>> extract_command("not json") is None
    True
    """
    try:
        envelope = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(envelope, dict):
        return None
    if envelope.get("tool_name") != BASH_TOOL:
        return None
    tool_input = envelope.get("tool_input")
    if not isinstance(tool_input, dict):
        return None
    command = tool_input.get("command")
    if not isinstance(command, str):
        return None
    return command


def evaluate(command: str, config: HookConfig) -> Verdict:
    """Refresh (fire-and-forget), load user rules, and decide."""
    if config.auto_update:
        maybe_refresh(config.hooks_dir, config.patterns_url, config.update_interval)
    user = load_user_file(config.patterns_path)
    return decide(command, compile_builtin(), user)


def run(raw: str, config: HookConfig) -> int:
    """Process one envelope and return the exit code."""
    command = extract_command(raw)
    if command is None:
        return EXIT_ALLOW

    logger.debug("EVALUATING: %s", command[:200])
    verdict = evaluate(command, config)

    if isinstance(verdict, Deny):
        logger.debug("DENY: %s", verdict.reason)
        print(f"Blocked: {verdict.reason}", file=sys.stderr)
        return EXIT_DENY

    logger.debug("ALLOW")
    return EXIT_ALLOW


def main():
    config = HookConfig.from_env()
    setup_hook_logging(config.debug, config.log_path)

    try:
        raw = sys.stdin.read()
    except (OSError, UnicodeDecodeError):
        sys.exit(EXIT_ALLOW)

    try:
        code = run(raw, config)
    except Exception:
        # A bug in the gate must not wedge the agent.
        logger.exception("internal error, allowing command")
        code = EXIT_ALLOW
    sys.exit(code)


if __name__ == "__main__":
    main()
