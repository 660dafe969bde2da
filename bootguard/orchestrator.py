"""
orchestrator.py - One full bootstrap run.

Sequence:
1. Integrity pass over every managed (operator-facing) script; the first
   failure ends the run with that pass's own code (301-307).
2. Self-repair protocol for the orchestrator's own script; never fatal.
3. Optional service readiness wait (bounded polling)            (120)
4. Final gate: re-validate the script copy preferred for execution (130)
5. Configuration lifecycle (bootstrap or reconcile)

Re-running after any failure is safe: every step re-derives its state
from the filesystem.
"""
from __future__ import annotations

import time
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from bootguard.codes import OrchestratorFailure, code_for
from bootguard.config import ScriptPair
from bootguard.context import RunContext
from bootguard.fsops import is_executable
from bootguard.integrity import IntegrityResult, SelfRepairProtocol, SelfRepairResult, ensure_integrity
from bootguard.lifecycle import LifecycleController, LifecycleOutcome
from bootguard.metadata_cli import MetadataCli
from bootguard.retry import bounded_retry
from bootguard.validator import validate


@dataclass
class RunReport:
    """Everything a run decided, for the CLI and for tests."""
    code: int = 0
    integrity: List[IntegrityResult] = field(default_factory=list)
    self_repair: Optional[SelfRepairResult] = None
    lifecycle: Optional[LifecycleOutcome] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.code == 0

    def result_line(self) -> str:
        outcome = self.lifecycle.kind.value if self.lifecycle else ("failed" if self.code else "ok")
        line = f"[RESULT] outcome={outcome} code={self.code}"
        if self.lifecycle and self.lifecycle.revision_id:
            line += f" revision={self.lifecycle.revision_id}"
        return line


def http_probe(endpoint: str, timeout: float = 2.0) -> Callable[[], bool]:
    """Readiness probe: GET <endpoint>/healthz answers 2xx."""
    url = endpoint.rstrip("/") + "/healthz"

    def probe() -> bool:
        try:
            with urllib.request.urlopen(url, timeout=timeout) as response:
                return 200 <= response.status < 300
        except (urllib.error.URLError, OSError, ValueError):
            return False

    return probe


def preferred_script(pair: ScriptPair) -> Path:
    """The copy to execute: the backup slot when it is executable, else the primary."""
    return pair.backup if is_executable(pair.backup) else pair.primary


class Orchestrator:
    def __init__(self, ctx: RunContext, cli: Optional[MetadataCli] = None,
                 probe: Optional[Callable[[], bool]] = None, sleep: Callable = time.sleep,
                 lifecycle: Optional[LifecycleController] = None):
        self.ctx = ctx
        self.config = ctx.config
        self.cli = cli or MetadataCli(self.config.metadata_cli)
        self.probe = probe
        if self.probe is None and self.config.service_endpoint:
            self.probe = http_probe(self.config.service_endpoint)
        self.sleep = sleep
        self.lifecycle = lifecycle or LifecycleController(ctx, self.cli, sleep=sleep)

    def process_scripts(self, report: RunReport) -> bool:
        log = self.ctx.log
        log.info("[SCRIPT-PROCESSING] Starting script integrity management")
        self.config.backup_dir.mkdir(parents=True, exist_ok=True)
        log.info("[SCRIPT-PROCESSING] Backup directory: %s", self.config.backup_dir)

        for pair in self.config.managed_pairs():
            result = ensure_integrity(pair, self.ctx)
            report.integrity.append(result)
            if not result.success:
                log.critical("[CRITICAL][CODE:%d] Critical failure in %s (cause: %s)",
                             result.code, pair.name, result.cause)
                report.code = result.code
                report.message = result.message
                return False

        self_result = SelfRepairProtocol(self.ctx).run()
        report.self_repair = self_result
        if not self_result.ok:
            log.critical("[CRITICAL][CODE:%d] Self-repair failed - manual intervention required",
                         self_result.code)
        log.info("[SCRIPT-PROCESSING] All scripts validated/repaired")
        return True

    def wait_for_service(self, report: RunReport) -> bool:
        if self.probe is None:
            return True
        config = self.config
        log = self.ctx.log
        log.info("[SERVICE] Waiting for readiness (%d attempts, %ss interval)",
                 config.readiness_attempts, config.readiness_interval)
        if bounded_retry(self.probe, attempts=config.readiness_attempts,
                         interval=config.readiness_interval, sleep=self.sleep):
            log.info("[SERVICE] Ready")
            return True
        failure = OrchestratorFailure.SERVICE_NOT_READY
        log.error("[ERROR][CODE:%d] Service failed to become ready", code_for(failure))
        report.code = code_for(failure)
        report.message = "service not ready"
        return False

    def final_gate(self, report: RunReport) -> bool:
        log = self.ctx.log
        for pair in self.config.managed_pairs():
            script = preferred_script(pair)
            log.info("[METADATA] Using script: %s", script)
            check = validate(script, self.config.policy)
            if not check.passed:
                log.warning(check.report())
                failure = OrchestratorFailure.FINAL_VALIDATION
                log.critical("[CRITICAL][CODE:%d] Final validation failed for %s",
                             code_for(failure), script.name)
                report.code = code_for(failure)
                report.message = f"final validation failed for {script}"
                return False
        return True

    def run(self) -> RunReport:
        report = RunReport()
        self.ctx.log.info("[INIT][START] %s", self.ctx.started_at)
        if not self.process_scripts(report):
            return report
        if not self.wait_for_service(report):
            return report
        if not self.final_gate(report):
            return report

        outcome = self.lifecycle.run()
        report.lifecycle = outcome
        report.code = outcome.code
        report.message = outcome.message
        return report
