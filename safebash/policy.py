"""The allow/deny decision for one command.

Evaluation chain (first decision wins, order is the security contract):
  1. Built-in deny: full command, then every segment. Nothing overrides it.
  2. User allow: full command. Passes the whole user layer.
  3. User deny: full command.
  4. User per-segment: a segment matching user allow is skipped; any other
     segment matching user deny blocks. An allowed segment never rescues
     its neighbours (``echo ok && forbidden`` is still checked on ``forbidden``).
  5. Allow.

Each stage returns a Verdict or None (no opinion, keep going).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence, Union

from safebash.rules import Rule, RuleSet
from safebash.segmenter import split_command


@dataclass(frozen=True)
class Allow:
    allowed = True


@dataclass(frozen=True)
class Deny:
    reason: str
    allowed = False


Verdict = Union[Allow, Deny]

ALLOW = Allow()


def check_rules(text: str, rules: Iterable[Rule]) -> Optional[Rule]:
    """Return the first rule whose pattern matches anywhere in text."""
    for rule in rules:
        if rule.matches(text):
            return rule
    return None


def _builtin_stage(command: str, segments: Sequence[str], builtin: RuleSet, user: RuleSet) -> Optional[Verdict]:
    for text in (command, *segments):
        rule = check_rules(text, builtin.deny)
        if rule is not None:
            return Deny(rule.reason)
    return None


def _user_allow_stage(command: str, segments: Sequence[str], builtin: RuleSet, user: RuleSet) -> Optional[Verdict]:
    if check_rules(command, user.allow) is not None:
        return ALLOW
    return None


def _user_deny_stage(command: str, segments: Sequence[str], builtin: RuleSet, user: RuleSet) -> Optional[Verdict]:
    rule = check_rules(command, user.deny)
    if rule is not None:
        return Deny(rule.reason)
    return None


def _user_segment_stage(command: str, segments: Sequence[str], builtin: RuleSet, user: RuleSet) -> Optional[Verdict]:
    for segment in segments:
        if check_rules(segment, user.allow) is not None:
            continue
        rule = check_rules(segment, user.deny)
        if rule is not None:
            return Deny(rule.reason)
    return None


Stage = Callable[[str, Sequence[str], RuleSet, RuleSet], Optional[Verdict]]

STAGES: tuple[Stage, ...] = (
    _builtin_stage,
    _user_allow_stage,
    _user_deny_stage,
    _user_segment_stage,
)


def decide(command: str, builtin: RuleSet, user: RuleSet) -> Verdict:
    """Decide whether command may run.

    >>> from safebash.rules import compile_builtin, EMPTY
    >>> decide("rm -rf /", compile_builtin(), EMPTY)
    Deny(reason='Destructive: rm -rf')
    >>> decide("git status", compile_builtin(), EMPTY)
    Allow()
    """
    segments = split_command(command)
    for stage in STAGES:
        verdict = stage(command, segments, builtin, user)
        if verdict is not None:
            return verdict
    return ALLOW
