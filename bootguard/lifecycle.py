"""
lifecycle.py - Configuration lifecycle controller.

Routes on the durable metadata tree:

    durable tree empty  -> BOOTSTRAP: scaffold a template, archive it, guide the operator
    durable tree exists -> RECONCILE: stage -> validate -> apply -> revision -> snapshot

Terminal outcomes: BOOTSTRAPPED, APPLIED (with revision id),
NO_CHANGES, FAILED (with stable code).

The durable tree is mutated only after the live apply succeeded. A failed
apply leaves staging and the CLI workspace in place for inspection and
the durable tree untouched; there is no automatic rollback.
"""
from __future__ import annotations

import shutil
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

import yaml

from bootguard.codes import LifecycleFailure
from bootguard.context import RunContext
from bootguard.dependencies import ensure_dependencies
from bootguard.errors import BootguardError, LifecycleError
from bootguard.fsops import copy_contents, is_empty_dir, list_tree, prepare_directory, purge_contents
from bootguard.metadata_cli import MetadataCli
from bootguard.output import bootstrap_guidance
from bootguard.retry import bounded_retry
from bootguard.revisions import RevisionLog
from bootguard.tree import VERSION_FILE, TreeValidator, TreeVerdict, read_version, version_matches


class Route(Enum):
    BOOTSTRAP = "bootstrap"
    RECONCILE = "reconcile"


class OutcomeKind(Enum):
    BOOTSTRAPPED = "bootstrapped"
    APPLIED = "applied"
    NO_CHANGES = "no_changes"
    FAILED = "failed"


@dataclass
class LifecycleOutcome:
    kind: OutcomeKind
    route: Route
    revision_id: Optional[str] = None
    code: int = 0
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.kind is not OutcomeKind.FAILED

    def summary(self) -> str:
        parts = [f"outcome={self.kind.value}", f"route={self.route.value}"]
        if self.revision_id:
            parts.append(f"revision={self.revision_id}")
        parts.append(f"code={self.code}")
        return " ".join(parts)


class LifecycleController:
    """Own the durable tree, staging copy and CLI workspace for one run."""

    def __init__(self, ctx: RunContext, cli: MetadataCli,
                 which: Callable = shutil.which, sleep: Callable = None):
        self.ctx = ctx
        self.config = ctx.config
        self.cli = cli
        self._which = which
        self._sleep = sleep or time.sleep
        self.revisions = RevisionLog(self.config.revisions_dir)

    @property
    def _revisions_entry(self) -> tuple:
        """Name of the revisions dir when it lives inside the durable tree."""
        if self.config.revisions_dir.parent == self.config.durable_dir:
            return (self.config.revisions_dir.name,)
        return ()

    def route(self) -> Route:
        if is_empty_dir(self.config.durable_dir, ignore=self._revisions_entry):
            return Route.BOOTSTRAP
        return Route.RECONCILE

    def run(self) -> LifecycleOutcome:
        log = self.ctx.log
        log.info("[META][MAIN] Initiating metadata management workflow.")
        route = self.route()
        try:
            if route is Route.BOOTSTRAP:
                log.info("[SCENARIO][ROUTE] 01 - Empty metadata directory detected. "
                         "Proceeding with template initialization.")
                outcome = self.bootstrap()
            else:
                log.info("[SCENARIO][ROUTE] 02 - Existing metadata detected. "
                         "Proceeding with validation and application.")
                outcome = self.reconcile()
        except BootguardError as e:
            log.error("[ERROR][CODE:%d] %s", e.code, e.message)
            if e.details:
                log.error("[ERROR][DETAILS] %s", e.details)
            return LifecycleOutcome(OutcomeKind.FAILED, route, code=e.code, message=e.message)
        log.info("[HEALTH][SYSTEM] %s", outcome.summary())
        return outcome

    # ------------------------------------------------------------------ bootstrap

    def bootstrap(self) -> LifecycleOutcome:
        config = self.config
        log = self.ctx.log
        ensure_dependencies(self.ctx, self.cli, which=self._which)
        log.info("[SCENARIO] Initializing new metadata template...")

        runtime = config.runtime_root
        if runtime.exists():
            log.info("[CLEAN] Removing existing active metadata: %s", runtime)
            try:
                shutil.rmtree(runtime)
            except OSError as e:
                raise LifecycleError(LifecycleFailure.RUNTIME_RESET, f"Failed to remove {runtime}: {e}")

        result = self.cli.scaffold(runtime, config.supported_version)
        if not result.ok:
            raise LifecycleError(LifecycleFailure.SCAFFOLD, "Failed: metadata init",
                                 details={"output": result.output})

        generated = config.cli_workspace
        if not (generated / VERSION_FILE).is_file():
            raise LifecycleError(LifecycleFailure.TEMPLATE_INCOMPLETE, "Critical: Template incomplete")
        version = self._safe_version(generated)
        if not version_matches(version, config.supported_version):
            raise LifecycleError(
                LifecycleFailure.TEMPLATE_VERSION,
                f"Template version {version} does not match v{config.supported_version}",
            )
        log.info("[STATUS][INIT] OK: Template generated: v%s", version)

        self._step(LifecycleFailure.ARCHIVE_PREPARE, "Failed to prepare template repository",
                   prepare_directory, config.template_dir)
        self._step(LifecycleFailure.ARCHIVE_COPY, "Failed: Template archiving",
                   copy_contents, generated, config.template_dir)
        if not version_matches(self._safe_version(config.template_dir), config.supported_version):
            raise LifecycleError(LifecycleFailure.ARCHIVE_VALIDATION, "Critical: Archive validation failed")
        log.info("[STATUS][ARCHIVE] OK: Template archived to reference repository")

        self.ctx.emit(bootstrap_guidance(config))
        log.info("[HEALTH][SCENARIO] Initialization workflow completed")
        return LifecycleOutcome(OutcomeKind.BOOTSTRAPPED, Route.BOOTSTRAP)

    # ------------------------------------------------------------------ reconcile

    def reconcile(self) -> LifecycleOutcome:
        ensure_dependencies(self.ctx, self.cli, which=self._which)
        staging = self.prepare_staging()

        self.ctx.log.info("[ACTION] Validating metadata in staging area: %s", staging)
        verdict = TreeValidator(self.ctx, self.cli).validate(staging)
        if verdict is TreeVerdict.UNCHANGED:
            self.ctx.log.info("[SCENARIO][ROUTE] 02.2 - No changes required. Skipping application.")
            return LifecycleOutcome(OutcomeKind.NO_CHANGES, Route.RECONCILE)

        self.ctx.log.info("[SCENARIO][ROUTE] 02.1 - Valid changes detected. Applying changes.")
        revision_id = self.apply(staging)
        return LifecycleOutcome(OutcomeKind.APPLIED, Route.RECONCILE, revision_id=revision_id)

    def prepare_staging(self) -> Path:
        config = self.config
        staging = config.staging_dir
        self.ctx.log.info("[DIR][staging_area] Preparing: %s", staging)
        self._step(LifecycleFailure.STAGING_PREPARE, "Staging area preparation failed",
                   prepare_directory, staging)
        self.ctx.log.info("[ACTION] Transferring metadata to staging area: %s -> %s",
                          config.durable_dir, staging)
        self._step(LifecycleFailure.STAGING_TRANSFER, "Transfer failed",
                   copy_contents, config.durable_dir, staging, exclude=self._revisions_entry)
        self._debug_tree(staging)
        return staging

    def apply(self, staging: Path) -> str:
        """Deploy `staging` to the live service, then record and snapshot it.

        Returns:
            The new revision id
        """
        config = self.config
        log = self.ctx.log
        workspace = config.cli_workspace
        log.info("[DEPLOY] Starting atomic deployment...")

        self._step(LifecycleFailure.RUNTIME_ROOT, f"Failed to create {config.runtime_root}",
                   config.runtime_root.mkdir, parents=True, exist_ok=True)

        log.info("[CLI-WORKSPACE] Verifying CLI workspace: %s", workspace)
        ready = bounded_retry(
            workspace.is_dir,
            attempts=config.workspace_wait_attempts,
            interval=config.workspace_wait_interval,
            on_wait=lambda n: log.info("[WAIT] CLI workspace not ready, waiting %ss...",
                                       config.workspace_wait_interval),
            sleep=self._sleep,
        )
        if not ready:
            log.info("[ACTION] Creating CLI workspace: %s", workspace)
            self._step(LifecycleFailure.CLI_WORKSPACE, "Failed to create CLI workspace",
                       workspace.mkdir, parents=True, exist_ok=True)

        log.info("[CLEAN] Purging existing metadata in %s", workspace)
        self._step(LifecycleFailure.WORKSPACE_PURGE, "Failed to clean workspace", purge_contents, workspace)

        log.info("[ACTION] Synchronizing metadata: %s -> %s", staging, workspace)
        self._step(LifecycleFailure.WORKSPACE_COPY, "Copy failed", copy_contents, staging, workspace)

        log.info("[ACTION] Applying metadata with %s CLI...", self.cli.binary)
        result = self.cli.apply(config.runtime_root)
        if not result.ok:
            raise LifecycleError(LifecycleFailure.APPLY, "Metadata apply failed.",
                                 details={"output": result.output})
        log.info("[STATUS][DEPLOY] OK: Metadata applied successfully.")

        revision = self._step(LifecycleFailure.REVISION_WRITE, "Failed to record deployment revision",
                              self.revisions.record, operation_id=self.ctx.operation_id, source=str(staging))
        log.info("[REVISION] Deployment ID: %s", revision.revision_id)

        durable = config.durable_dir
        log.info("[ARCHIVE] Creating persistent storage snapshot in %s.", durable)
        self._step(LifecycleFailure.DURABLE_PREPARE, "Failed to prepare persistent storage",
                   prepare_directory, durable, keep=self._revisions_entry)
        self._step(LifecycleFailure.DURABLE_COPY, "Snapshot failed", copy_contents, staging, durable)
        if not (durable / VERSION_FILE).is_file():
            raise LifecycleError(LifecycleFailure.DURABLE_VALIDATION, "Persistent snapshot validation failed")
        log.info("[STATUS][ARCHIVE] OK: Persistent snapshot created.")
        return revision.revision_id

    # ------------------------------------------------------------------ helpers

    def _step(self, failure: LifecycleFailure, message: str, fn: Callable, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except OSError as e:
            raise LifecycleError(failure, f"{message}: {e}")

    @staticmethod
    def _safe_version(meta_dir: Path):
        try:
            return read_version(meta_dir)
        except (OSError, yaml.YAMLError, UnicodeDecodeError):
            return None

    def _debug_tree(self, directory: Path) -> None:
        if self.config.debug:
            self.ctx.log.debug("[DEBUG][POST] Directory state: %s\n%s", directory,
                               "\n".join(list_tree(directory)))


def run_lifecycle(ctx: RunContext, cli: Optional[MetadataCli] = None) -> LifecycleOutcome:
    cli = cli or MetadataCli(ctx.config.metadata_cli)
    return LifecycleController(ctx, cli).run()


__all__ = [
    "Route",
    "OutcomeKind",
    "LifecycleOutcome",
    "LifecycleController",
    "run_lifecycle",
]
