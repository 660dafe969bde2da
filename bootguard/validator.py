"""
validator.py - Seven-layer structural validation for executable scripts.

Layers, always run in this order and always all of them, so a single
report lists every problem:
1. Existence       - path is a regular file                      (101)
2. Minimum size    - content is at least policy.min_size bytes    (102)
3. Entry marker    - first line matches policy.marker_pattern     (103)
4. Line endings    - no carriage returns                          (104)
5. Syntax          - policy.syntax_command accepts the file       (105)
6. Directives      - each fail-fast directive appears literally   (106, 107)
7. Checksum        - matches the sidecar record when one exists   (108)

The validator never writes. Given unchanged input it returns the same
verdict every time.
"""
from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Union

from bootguard.codes import ScriptCheck, code_for
from bootguard.config import ScriptPolicy
from bootguard.hashing import checksum_matches

DIRECTIVE_CHECKS = (ScriptCheck.DIRECTIVE_ERREXIT, ScriptCheck.DIRECTIVE_PIPEFAIL)


@dataclass
class ValidationIssue:
    """A single failed layer."""
    check: ScriptCheck
    message: str

    @property
    def code(self) -> int:
        return code_for(self.check)

    def __str__(self) -> str:
        return f"{self.code}:{self.message}"


@dataclass
class ValidationResult:
    """Outcome of validating one script.

    Attributes:
        path: The script that was validated
        issues: Failed layers in execution order (empty means healthy)
    """
    path: Path
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.issues

    @property
    def codes(self) -> List[int]:
        return [i.code for i in self.issues]

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "passed": self.passed,
            "issues": [{"code": i.code, "check": i.check.value, "message": i.message} for i in self.issues],
        }

    def report(self) -> str:
        if self.passed:
            return f"[VALIDATE] {self.path.name}: OK"
        lines = [f"[VALIDATE] Found {len(self.issues)} issues:"]
        lines.extend(f"  - {issue}" for issue in self.issues)
        return "\n".join(lines)


def first_line(content: bytes) -> str:
    return content.split(b"\n", 1)[0].decode("utf-8", errors="replace")


def has_marker(content: bytes, policy: ScriptPolicy) -> bool:
    return re.search(policy.marker_pattern, first_line(content)) is not None


def syntax_ok(path: Path, policy: ScriptPolicy) -> bool:
    """Parse the script with the interpreter's no-exec mode."""
    try:
        result = subprocess.run(
            [*policy.syntax_command, str(path)],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError:
        return False
    return result.returncode == 0


def validate(path: Union[str, Path], policy: ScriptPolicy = None) -> ValidationResult:
    """Run every layer against `path` and collect the failures."""
    path = Path(path)
    policy = policy or ScriptPolicy()
    issues: List[ValidationIssue] = []

    def fail(check: ScriptCheck, message: str) -> None:
        issues.append(ValidationIssue(check, message))

    # Layer 1: Existence
    exists = path.is_file()
    if not exists:
        fail(ScriptCheck.EXISTS, "File not found")

    content = b""
    if exists:
        try:
            content = path.read_bytes()
        except OSError:
            content = b""

    # Layer 2: Minimum size
    if len(content) < policy.min_size:
        fail(ScriptCheck.MIN_SIZE, "File too small")

    # Layer 3: Entry marker
    if not has_marker(content, policy):
        fail(ScriptCheck.ENTRY_MARKER, "Invalid shebang")

    # Layer 4: Line endings
    if b"\r" in content:
        fail(ScriptCheck.LINE_ENDINGS, "CRLF detected")

    # Layer 5: Syntax
    if not (exists and syntax_ok(path, policy)):
        fail(ScriptCheck.SYNTAX, "Syntax error")

    # Layer 6: Safety directives
    text = content.decode("utf-8", errors="replace")
    for check, directive in zip(DIRECTIVE_CHECKS, policy.directives):
        if directive not in text:
            fail(check, f"Missing '{directive}'")

    # Layer 7: Checksum
    if not checksum_matches(path):
        fail(ScriptCheck.CHECKSUM, "Checksum mismatch")

    return ValidationResult(path=path, issues=issues)
