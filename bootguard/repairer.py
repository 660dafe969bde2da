"""
repairer.py - Secure repair pipeline for scripts.

Steps, each short-circuiting with its own failure member:
1. Capture the source into an isolated workspace          (201)
2. Apply REPAIR_RULES to the captured copy, in order      (202-205)
3. Re-validate the repaired copy                          (206)
4. Promote: copy to destination and mark it executable    (207)
5. Regenerate the destination's checksum record (best effort; warns)

The workspace is discarded on every path. `source` and `destination` may
be the same file: nothing at either path changes before step 4.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from bootguard.codes import RepairFailure, code_for
from bootguard.context import RunContext
from bootguard.fsops import copy_file, make_executable
from bootguard.hashing import write_checksum
from bootguard.rules import REPAIR_RULES
from bootguard.validator import ValidationIssue, validate
from bootguard.workspace import IsolatedWorkspace


@dataclass
class RepairResult:
    """Outcome of one repair.

    Attributes:
        success: True if the repaired copy was promoted to destination
        destination: Promotion target
        failure: Failure member when success is False
        issues: Validation issues left after repair (post-repair failure only)
        applied: Names of rules that changed the content
    """
    success: bool
    destination: Path
    failure: Optional[RepairFailure] = None
    issues: List[ValidationIssue] = field(default_factory=list)
    applied: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def code(self) -> int:
        return code_for(self.failure) if self.failure else 0


def repair(source: Union[str, Path], destination: Union[str, Path], ctx: RunContext) -> RepairResult:
    """Repair `source` in isolation and promote the result to `destination`."""
    source, destination = Path(source), Path(destination)
    policy = ctx.config.policy
    log = ctx.log

    def failed(failure: RepairFailure, error: str, **extra) -> RepairResult:
        log.error("[REPAIR][CODE:%d] %s", code_for(failure), error)
        return RepairResult(success=False, destination=destination, failure=failure, error=error, **extra)

    log.info("[REPAIR] Initiating repair for %s", source.name)
    with IsolatedWorkspace("repair", log=log) as ws:
        log.info("[REPAIR] Isolation zone: %s", ws.path)

        try:
            work_file = ws.capture(source)
        except OSError as e:
            return failed(RepairFailure.ISOLATION_COPY, f"Failed to capture {source}: {e}")

        applied = []
        for rule in REPAIR_RULES:
            try:
                text = work_file.read_bytes().decode("utf-8", errors="surrogateescape")
                fixed = rule.apply(text, policy)
                if fixed != text:
                    work_file.write_bytes(fixed.encode("utf-8", errors="surrogateescape"))
                    applied.append(rule.name)
            except (OSError, ValueError) as e:
                return failed(rule.failure, f"Repair step '{rule.name}' failed: {e}", applied=applied)
        if applied:
            log.info("[REPAIR] Applied: %s", ", ".join(applied))

        log.info("[REPAIR] Validating repaired script")
        check = validate(work_file, policy)
        if not check.passed:
            log.warning(check.report())
            return failed(
                RepairFailure.POST_REPAIR_VALIDATION,
                f"Repaired copy of {source.name} still fails validation: {check.codes}",
                issues=check.issues,
                applied=applied,
            )

        try:
            copy_file(work_file, destination)
            make_executable(destination)
        except OSError as e:
            return failed(RepairFailure.PROMOTION, f"Failed to promote to {destination}: {e}", applied=applied)

    try:
        write_checksum(destination)
    except OSError as e:
        log.warning("[WARN] Failed to create checksum for %s: %s", destination, e)

    log.info("[REPAIR] Repair completed successfully")
    return RepairResult(success=True, destination=destination, applied=applied)
