"""
integrity.py - Script integrity assurance for (primary, backup) pairs.

ensure_integrity() walks a linear state machine, evaluated fresh on every
run from the filesystem alone:

| State | Condition | Action |
|-------|-----------|--------|
| S0 PRIMARY_HEALTHY | primary validates | none |
| S1 BACKUP_HEALTHY | primary fails, backup validates | copy backup -> primary, +x, re-validate |
| S2 DUAL_CORRUPT | primary fails, backup absent/fails | repair(primary -> backup), copy -> primary, +x, re-validate |

Every path ends in success or one uniquely coded failure (301-307).

SelfRepairProtocol specialises this for the orchestrator's own script,
which cannot be overwritten while it runs: it never writes the primary.
On dual corruption it repairs into the backup slot, prints an action
plan and drops a readiness marker. The current run continues either way.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from bootguard.codes import IntegrityFailure, ScriptCheck, SelfRepairFailure, code_for
from bootguard.config import ScriptPair
from bootguard.context import RunContext
from bootguard.fsops import copy_file, make_executable
from bootguard.hashing import write_checksum
from bootguard.output import backup_available_action_plan, self_repair_action_plan
from bootguard.repairer import RepairResult, repair
from bootguard.validator import ValidationResult, validate
from bootguard.workspace import IsolatedWorkspace


class IntegrityState(Enum):
    PRIMARY_HEALTHY = "primary_healthy"
    BACKUP_HEALTHY = "backup_healthy"
    DUAL_CORRUPT = "dual_corrupt"


@dataclass
class IntegrityResult:
    """Outcome of one integrity pass.

    Attributes:
        pair: The script pair that was checked
        state: State the pass started from
        success: True when the primary ends healthy
        failure: Failure member when success is False
        cause: Stable code of the underlying repair failure (REPAIR only)
    """
    pair: ScriptPair
    state: IntegrityState
    success: bool
    failure: Optional[IntegrityFailure] = None
    cause: Optional[int] = None
    message: str = ""

    @property
    def code(self) -> int:
        return code_for(self.failure) if self.failure else 0


def checksum_only(result: ValidationResult) -> bool:
    """True when the content is sound and only the checksum record disagrees."""
    return [i.check for i in result.issues] == [ScriptCheck.CHECKSUM]


def _log_validation(ctx: RunContext, result: ValidationResult) -> None:
    if not result.passed:
        ctx.log.warning(result.report())


def _deploy_known_good(ctx: RunContext, source: Path, primary: Path) -> Optional[str]:
    """Copy a validated copy over the primary and mark it executable.

    Returns:
        None on success, else the step that failed: "copy" or "chmod"
    """
    try:
        copy_file(source, primary)
    except OSError as e:
        ctx.log.error("[ERROR] Copy %s -> %s failed: %s", source, primary, e)
        return "copy"
    try:
        make_executable(primary)
    except OSError as e:
        ctx.log.error("[ERROR] chmod +x %s failed: %s", primary, e)
        return "chmod"
    try:
        write_checksum(primary)
    except OSError as e:
        ctx.log.warning("[WARN] Failed to refresh checksum for %s: %s", primary, e)
    return None


class IntegrityManager:
    """Keep the primary of a script pair healthy, restoring or repairing it."""

    def __init__(self, ctx: RunContext):
        self.ctx = ctx
        self.policy = ctx.config.policy

    def classify(self, pair: ScriptPair) -> IntegrityState:
        """Determine the starting state without touching anything."""
        if validate(pair.primary, self.policy).passed:
            return IntegrityState.PRIMARY_HEALTHY
        if pair.backup.is_file() and validate(pair.backup, self.policy).passed:
            return IntegrityState.BACKUP_HEALTHY
        return IntegrityState.DUAL_CORRUPT

    def ensure(self, pair: ScriptPair) -> IntegrityResult:
        log = self.ctx.log
        log.info("[SCRIPT] Verifying %s integrity", pair.name)

        primary_check = validate(pair.primary, self.policy)
        if primary_check.passed:
            log.info("[SCRIPT] Primary %s validated", pair.name)
            return IntegrityResult(pair, IntegrityState.PRIMARY_HEALTHY, success=True)
        _log_validation(self.ctx, primary_check)

        if pair.backup.is_file():
            backup_check = validate(pair.backup, self.policy)
            if backup_check.passed:
                return self._restore(pair)
            _log_validation(self.ctx, backup_check)

        if checksum_only(primary_check):
            return self._fail(pair, IntegrityState.DUAL_CORRUPT, IntegrityFailure.REPAIR,
                              f"Checksum mismatch for {pair.name} is not auto-corrected",
                              cause=code_for(ScriptCheck.CHECKSUM))
        return self._repair(pair)

    def _fail(self, pair: ScriptPair, state: IntegrityState, failure: IntegrityFailure,
              message: str, cause: Optional[int] = None) -> IntegrityResult:
        self.ctx.log.error("[ERROR][CODE:%d] %s", code_for(failure), message)
        return IntegrityResult(pair, state, success=False, failure=failure, cause=cause, message=message)

    def _restore(self, pair: ScriptPair) -> IntegrityResult:
        state = IntegrityState.BACKUP_HEALTHY
        self.ctx.log.info("[RECOVERY] Restoring %s from valid backup", pair.name)
        step = _deploy_known_good(self.ctx, pair.backup, pair.primary)
        if step == "copy":
            return self._fail(pair, state, IntegrityFailure.RESTORE_COPY, "Failed to restore from backup")
        if step == "chmod":
            return self._fail(pair, state, IntegrityFailure.RESTORE_PERMISSIONS, "Permission update failed")

        final = validate(pair.primary, self.policy)
        if not final.passed:
            _log_validation(self.ctx, final)
            return self._fail(pair, state, IntegrityFailure.RESTORE_VALIDATION, "Post-restoration validation failed")
        self.ctx.log.info("[RECOVERY] Restoration successful - %s healthy", pair.name)
        return IntegrityResult(pair, state, success=True, message="restored from backup")

    def _repair(self, pair: ScriptPair) -> IntegrityResult:
        state = IntegrityState.DUAL_CORRUPT
        self.ctx.log.critical("[CRITICAL] Dual corruption detected for %s - initiating repair", pair.name)
        repaired: RepairResult = repair(pair.primary, pair.backup, self.ctx)
        if not repaired.success:
            return self._fail(pair, state, IntegrityFailure.REPAIR,
                              f"Repair failed for {pair.name}", cause=repaired.code)
        self.ctx.log.info("[REPAIR-SUCCESS] %s repaired in backup location", pair.name)

        step = _deploy_known_good(self.ctx, pair.backup, pair.primary)
        if step == "copy":
            return self._fail(pair, state, IntegrityFailure.DEPLOY_COPY, "Failed to deploy to primary")
        if step == "chmod":
            return self._fail(pair, state, IntegrityFailure.DEPLOY_PERMISSIONS, "Permission update failed")

        final = validate(pair.primary, self.policy)
        if not final.passed:
            _log_validation(self.ctx, final)
            return self._fail(pair, state, IntegrityFailure.DEPLOY_VALIDATION, "Post-repair validation failed")
        self.ctx.log.info("[REPAIR-SUCCESS] Primary %s restored and validated", pair.name)
        return IntegrityResult(pair, state, success=True, message="repaired")


def ensure_integrity(pair: ScriptPair, ctx: RunContext) -> IntegrityResult:
    return IntegrityManager(ctx).ensure(pair)


class SelfRepairOutcome(Enum):
    PRIMARY_HEALTHY = "primary_healthy"
    BACKUP_AVAILABLE = "backup_available"
    DEFERRED = "deferred"
    FAILED = "failed"


@dataclass
class SelfRepairResult:
    """Outcome of the self-script pass. Never aborts the run."""
    outcome: SelfRepairOutcome
    failure: Optional[SelfRepairFailure] = None
    cause: Optional[int] = None
    message: str = ""

    @property
    def code(self) -> int:
        return code_for(self.failure) if self.failure else 0

    @property
    def ok(self) -> bool:
        return self.outcome is not SelfRepairOutcome.FAILED


class SelfRepairProtocol:
    """Integrity pass for the script that is currently executing.

    Writes only to the backup slot and the readiness marker.
    """

    def __init__(self, ctx: RunContext):
        self.ctx = ctx
        self.config = ctx.config
        self.policy = ctx.config.policy
        self.pair = ctx.config.self_pair()

    def run(self) -> SelfRepairResult:
        log = self.ctx.log
        primary, backup = self.pair.primary, self.pair.backup

        if validate(primary, self.policy).passed:
            log.info("[SELF] Primary %s validated", primary.name)
            return SelfRepairResult(SelfRepairOutcome.PRIMARY_HEALTHY)

        if backup.is_file() and validate(backup, self.policy).passed:
            log.warning("[WARNING] Current %s is unhealthy but backup is healthy", primary.name)
            log.warning("          Backup available at: %s", backup)
            self.ctx.emit(backup_available_action_plan(self.config))
            return SelfRepairResult(SelfRepairOutcome.BACKUP_AVAILABLE, message=str(backup))

        log.critical("[CRITICAL] Both primary and backup %s are unhealthy", primary.name)
        if backup.exists():
            log.info("[CLEAN] Removing unhealthy backup")
            try:
                backup.unlink()
            except OSError as e:
                log.warning("[WARN] Could not remove unhealthy backup %s: %s", backup, e)
        return self._repair_into_backup()

    def _fail(self, failure: SelfRepairFailure, message: str, cause: Optional[int] = None) -> SelfRepairResult:
        self.ctx.log.error("[SELF-REPAIR-ERROR][CODE:%d] %s", code_for(failure), message)
        return SelfRepairResult(SelfRepairOutcome.FAILED, failure=failure, cause=cause, message=message)

    def _repair_into_backup(self) -> SelfRepairResult:
        log = self.ctx.log
        primary, backup = self.pair.primary, self.pair.backup
        log.info("[SELF-REPAIR] Initiating self-repair protocol")

        with IsolatedWorkspace("self-repair", log=log) as ws:
            log.info("[SELF-REPAIR] Isolation zone: %s", ws.path)
            try:
                work_file = ws.capture(primary)
            except OSError as e:
                return self._fail(SelfRepairFailure.CAPTURE, f"Failed to capture running script: {e}")

            repaired = repair(work_file, work_file, self.ctx)
            if not repaired.success:
                return self._fail(SelfRepairFailure.REPAIR, "Repair sequence failed", cause=repaired.code)

            check = validate(work_file, self.policy)
            if not check.passed:
                log.warning(check.report())
                return self._fail(SelfRepairFailure.VALIDATION, "Post-repair validation failed")

            try:
                copy_file(work_file, backup)
                make_executable(backup)
            except OSError as e:
                return self._fail(SelfRepairFailure.PERSIST, f"Failed to persist repaired version: {e}")

        try:
            write_checksum(backup)
        except OSError as e:
            log.warning("[WARN] Failed to create checksum for %s: %s", backup, e)

        self.ctx.emit(self_repair_action_plan(self.config, self.ctx.pid))
        self._touch_marker()
        return SelfRepairResult(SelfRepairOutcome.DEFERRED, message=str(backup))

    def _touch_marker(self) -> None:
        marker = self.config.ready_marker
        try:
            marker.parent.mkdir(parents=True, exist_ok=True)
            marker.touch()
            self.ctx.log.info("[SELF-REPAIR] Readiness marker created: %s", marker)
        except OSError as e:
            self.ctx.log.warning("[WARN] Failed to create readiness marker %s: %s", marker, e)
