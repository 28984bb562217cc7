"""Built-in and user-supplied rule sets.

Built-in rules are deny-only, compiled once per process, and can never be
overridden. User rules come from a JSON document on disk::

    {
      "version": 1,
      "deny":  [{"pattern": "\\\\bnpm\\\\s+publish\\\\b", "reason": "Publishing: npm publish"}],
      "allow": [{"pattern": "^git\\\\s+log\\\\b", "reason": "read-only"}]
    }

Loading user rules never fails the caller: anything unusable is skipped
with one warning and the rest of the document still applies.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_USER_REASON = "Blocked by safe-bash patterns"


@dataclass(frozen=True)
class Rule:
    pattern: re.Pattern
    reason: str

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


@dataclass(frozen=True)
class RuleSet:
    deny: tuple[Rule, ...] = field(default_factory=tuple)
    allow: tuple[Rule, ...] = field(default_factory=tuple)
    version: Optional[int] = None

    def __len__(self) -> int:
        return len(self.deny) + len(self.allow)


EMPTY = RuleSet()

# --- Built-in deny table ---
# (pattern, reason, flags). Order matters: the first match supplies the reason.

_I = re.IGNORECASE

# Command position: start of text, after whitespace or a chain operator, or
# after a path separator (/bin/rm). A quote before the word does not count,
# so searching FOR "rm -rf" with grep stays allowed.
_CMD = r"(?:^|[\s;|&/])"
# Stricter command position for words that are common as plain arguments.
_CMD_START = r"(?:^|[;|&(])\s*(?:[^\s;|&(]*/)?"

_READERS = r"\b(?:cat|head|tail|less|more|bat)\s+"
_SHELL_C = r"""\b(?:bash|sh|zsh|ksh|dash)\s+-c\s+["']?"""

# One command: stops at chain operators and newlines.
_SAME_COMMAND = r"[^;&|\n]"


def _followed_by(head: str, tail: str, gap: str = _SAME_COMMAND) -> str:
    """head, then any run of gap characters, then tail.

    The gap may not run over another head, so a repeated head ("git push
    git push ...") is scanned once instead of once per repetition. Matching
    stays linear in the length of the command.

    >>> bool(re.search(_followed_by(r"\\bfind\\b", r"\\s-delete\\b"), "find . -delete"))
    True
    >>> bool(re.search(_followed_by(r"\\bfind\\b", r"\\s-delete\\b"), "find . ; x -delete"))
    False
    """
    return rf"{head}(?:(?!{head}){gap})*{tail}"


BUILTIN_TABLE: tuple[tuple[str, str, int], ...] = (
    # Destructive file ops
    (_CMD + r"rm\s+-(?=\S*r)(?=\S*f)", "Destructive: rm -rf", _I),
    (_CMD + r"rm\s+(?:-\S+\s+)*(?:-[a-z]*r[a-z]*|--recursive)\b", "Destructive: rm -r", _I),
    (r"\brmdir\b", "Destructive: rmdir", _I),
    (r"\bmkfs\b", "Destructive: mkfs (overwrites filesystem)", _I),
    (r"\bdd\s+if=", "Destructive: dd if= (disk write)", _I),
    (r"\bshred\b", "Destructive: shred (secure file deletion)", _I),
    (_followed_by(r"\bfind\b", r"\s-delete\b"), "Destructive: find -delete", _I),
    (_followed_by(r"\bfind\b", r"\s-exec\s+(?:\S*/)?rm\b"), "Destructive: find -exec rm", _I),
    (_CMD_START + r"truncate\s", "Destructive: truncate", _I),

    # Destructive git
    (_followed_by(r"\bgit\s+push\b", r"\s(?:-f|--force)(?=[\s;&|<>]|$)"), "Destructive: git force push", _I),
    (_followed_by(r"\bgit\s+push\b", r"\s\+\S"), "Destructive: git force push (+refspec)", _I),
    (r"\bgit\s+reset\s+--hard\b", "Destructive: git reset --hard", _I),
    (r"\bgit\s+clean\b", "Destructive: git clean", _I),
    (r"\bgit\s+checkout\s+--(?:\s|$)", "Destructive: git checkout --", _I),
    (r"\bgit\s+restore\b", "Destructive: git restore", _I),
    (r"\bgit\s+branch\s+(?:-D|--delete\s+(?:-f|--force))\b", "Destructive: git branch -D", 0),

    # Permission bombs
    (r"\bchmod\s+-R\s+777\b", "Dangerous: chmod -R 777", _I),
    (r"\bchmod\s+777\s+/", "Dangerous: chmod 777 /", _I),

    # Shell injection / embedded dangerous commands
    (_followed_by(_SHELL_C, r"\brm\s+-(?:rf|fr|r)\b", gap=r"""[^"']"""),
     "Shell injection: rm inside shell -c", _I),
    (_followed_by(_SHELL_C, r"\b(?:mkfs|dd\s+if=|shred)\b", gap=r"""[^"']"""),
     "Shell injection: destructive command inside shell -c", _I),
    (r"\beval\s+", "Dangerous: eval execution", _I),
    (r"\|\s*(?:bash|sh|zsh|ksh|dash)\b", "Shell injection: pipe to shell", _I),

    # Exfiltration
    (_followed_by(r"\|\s*curl\s+", r"-X\s+POST\b"), "Exfiltration: pipe to curl POST", _I),
    (r"\|\s*curl\b", "Exfiltration: pipe to curl", _I),
    (r"\b(?:nc|netcat)\s+", "Exfiltration: netcat", _I),

    # Sensitive reads
    (_followed_by(_READERS, r"\.?ssh/"), "Sensitive: reading SSH key", _I),
    (_followed_by(_READERS, r"\.?aws/"), "Sensitive: reading AWS credentials", _I),
    (_followed_by(_READERS, r"\.env\b"), "Sensitive: reading .env file", _I),
    (_followed_by(_READERS, r"\.env\."), "Sensitive: reading .env.* file", _I),
    (_CMD_START + r"printenv\b", "Sensitive: printenv (dumps environment)", _I),

    # Overwrites through tee; "tee -a" appends and is fine
    (_CMD_START + r"tee\s+(?!\s)(?!(?:-[ip]*a[ip]*|--append)\b)", "Destructive: tee overwrite (use tee -a)", 0),

    # GitHub CLI destructive
    (_followed_by(r"\bgh\s+api\s+", r"-X\s+DELETE\b"), "Destructive: gh api DELETE", _I),
    (_followed_by(r"\bgh\s+api\s+", r"-X\s+PUT\b"), "Destructive: gh api PUT", _I),
    (_followed_by(r"\bgh\s+api\s+", r"-X\s+POST\b"), "Destructive: gh api POST", _I),

    # File truncation via redirect
    (r"^[ \t]*>\s*\S", "Destructive: file truncation (> file)", re.MULTILINE),
    (r";\s*>\s*\S", "Destructive: file truncation (> file) in chain", 0),
    (r"&&\s*>\s*\S", "Destructive: file truncation (> file) in chain", 0),

    # In-place edits
    (r"\bsed\s+(?:-[a-z]*i[a-z]*|--in-place)\b", "Destructive: sed -i (in-place edit)", _I),

    # System destructive
    (r":\(\)\s*\{\s*:\s*\|\s*:\s*&", "System: fork bomb", 0),
    (r"\bshutdown\b", "System: shutdown", _I),
    (r"\breboot\b", "System: reboot", _I),
    (r"\bkill\s+-9\s+-1\b", "System: kill -9 -1 (kill all processes)", 0),
    (r"\bpkill\s+-9\s+-1\b", "System: pkill -9 -1 (kill all processes)", 0),
)


@lru_cache(maxsize=None)
def compile_builtin() -> RuleSet:
    """Compile the built-in deny table. Allow is always empty.

    A pattern that fails to compile here is a bug, so re.error propagates.

    >>> rules = compile_builtin()
    >>> rules.allow
    ()
    >>> rules.deny[0].reason
    'Destructive: rm -rf'
    """
    deny = tuple(
        Rule(pattern=re.compile(pattern, flags), reason=reason)
        for pattern, reason, flags in BUILTIN_TABLE
    )
    return RuleSet(deny=deny, allow=())


def _compile_entries(entries: Any, kind: str) -> tuple[Rule, ...]:
    if entries is None:
        return ()
    if not isinstance(entries, list):
        logger.warning("'%s' is not a list, ignoring it", kind)
        return ()

    compiled: list[Rule] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            logger.warning("invalid %s entry #%d: expected an object", kind, index)
            continue
        pattern = entry.get("pattern")
        if not isinstance(pattern, str) or not pattern:
            logger.warning("invalid %s entry #%d: missing pattern", kind, index)
            continue
        reason = entry.get("reason")
        if not isinstance(reason, str) or not reason.strip():
            reason = DEFAULT_USER_REASON
        try:
            compiled.append(Rule(pattern=re.compile(pattern), reason=reason))
        except re.error as e:
            logger.warning("invalid %s regex %r: %s", kind, pattern, e)
    return tuple(compiled)


def load_user(document: Union[bytes, str, None]) -> RuleSet:
    """Compile a user rule document. Never raises.

    >>> load_user(None) == EMPTY
    True
    >>> len(load_user(b'{"deny": [{"pattern": "foo", "reason": "no foo"}]}').deny)
    1
    """
    if document is None:
        return EMPTY

    if isinstance(document, bytes):
        try:
            document = document.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            logger.warning("could not decode patterns document: %s; using hardcoded patterns only", e)
            return EMPTY

    try:
        data = json.loads(document)
    except json.JSONDecodeError as e:
        logger.warning("malformed JSON in patterns document: %s; using hardcoded patterns only", e)
        return EMPTY

    if not isinstance(data, dict):
        logger.warning("patterns document is not a JSON object; using hardcoded patterns only")
        return EMPTY

    version = data.get("version")
    if isinstance(version, bool) or not isinstance(version, int):
        version = None

    return RuleSet(
        deny=_compile_entries(data.get("deny"), "deny"),
        allow=_compile_entries(data.get("allow"), "allow"),
        version=version,
    )


def load_user_file(path: Path) -> RuleSet:
    """Read and compile the user rule document at path. Missing file is not an error."""
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        return EMPTY
    except OSError as e:
        logger.warning("could not read %s: %s", path, e)
        return EMPTY
    return load_user(raw)
