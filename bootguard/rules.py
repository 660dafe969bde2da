"""
rules.py - Ordered text-transform rules applied by the repairer.

Each rule is a pure function `(text, policy) -> text` paired with the
failure member reported if applying it raises. Rules are applied in
REPAIR_RULES order:

1. Strip carriage returns.
2. Insert the default entry marker as line 1 when no marker is present.
3. Insert the first directive right after the marker when missing.
4. Insert the second directive right after the first when missing.

Rules only add what is missing; text that already satisfies a rule is
returned unchanged.
"""
from __future__ import annotations

from typing import Callable, List, NamedTuple

from bootguard.codes import RepairFailure
from bootguard.config import ScriptPolicy


class RepairRule(NamedTuple):
    name: str
    failure: RepairFailure
    apply: Callable[[str, ScriptPolicy], str]


def _lines(text: str) -> List[str]:
    return text.splitlines(keepends=True)


def _join(lines: List[str]) -> str:
    fixed = [line if line.endswith("\n") else line + "\n" for line in lines[:-1]]
    return "".join(fixed + lines[-1:])


def _insert_after(lines: List[str], index: int, line: str) -> str:
    return _join(lines[: index + 1] + [line + "\n"] + lines[index + 1:])


def strip_carriage_returns(text: str, policy: ScriptPolicy) -> str:
    return text.replace("\r\n", "\n").replace("\r", "")


def ensure_entry_marker(text: str, policy: ScriptPolicy) -> str:
    # Anything already starting with "#!" counts; a foreign interpreter is
    # reported by the validator, not rewritten.
    if text.startswith("#!"):
        return text
    return f"{policy.default_marker}\n{text}"


def ensure_first_directive(text: str, policy: ScriptPolicy) -> str:
    directive = policy.directives[0]
    if directive in text:
        return text
    lines = _lines(text)
    anchor = 0 if lines and lines[0].startswith("#!") else -1
    return _insert_after(lines, anchor, directive)


def ensure_second_directive(text: str, policy: ScriptPolicy) -> str:
    first, second = policy.directives[0], policy.directives[1]
    if second in text:
        return text
    lines = _lines(text)
    anchor = next((i for i, line in enumerate(lines) if first in line), None)
    if anchor is None:
        anchor = 0 if lines and lines[0].startswith("#!") else -1
    return _insert_after(lines, anchor, second)


REPAIR_RULES = [
    RepairRule("line_endings", RepairFailure.LINE_ENDINGS, strip_carriage_returns),
    RepairRule("entry_marker", RepairFailure.ENTRY_MARKER, ensure_entry_marker),
    RepairRule("first_directive", RepairFailure.FIRST_DIRECTIVE, ensure_first_directive),
    RepairRule("second_directive", RepairFailure.SECOND_DIRECTIVE, ensure_second_directive),
]


def apply_rules(text: str, policy: ScriptPolicy) -> str:
    """Apply every rule in order (no failure mapping)."""
    for rule in REPAIR_RULES:
        text = rule.apply(text, policy)
    return text
