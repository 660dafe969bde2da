#!/usr/bin/env python3
"""
Operator-facing text.

The numbered action plans and the bootstrap guidance are contractual
output: operators follow them by hand, so their wording and numbering
are stable.
"""
from typing import List, Tuple

from bootguard.config import BootguardConfig

RULE = "=" * 65


def _host_path(config: BootguardConfig) -> str:
    return config.host_script_path or f"./{config.self_script.name}"


def _container(config: BootguardConfig) -> str:
    return config.container_id or "$CONTAINER_ID"


def self_repair_action_plan(config: BootguardConfig, pid: int) -> str:
    """Steps after the running script was repaired into its backup slot."""
    backup = config.backup_for(config.self_script)
    host = _host_path(config)
    return "\n".join([
        "[SELF-REPAIR-SUCCESS] Self-repair completed! Required actions:",
        f"1. Current process continues running (PID {pid})",
        "2. Retrieve the corrected file from the backup slot:",
        f"   docker cp {_container(config)}:{backup} {host}",
        "3. Verify the copied file:",
        f"   ls -l {host}",
        "4. Restart the service:",
        f"   {config.restart_command}",
        "",
        f"NOTE: The service will not auto-restart while {config.self_script.name} is executing.",
    ])


def backup_available_action_plan(config: BootguardConfig) -> str:
    """Steps when the running script is unhealthy but its backup is healthy."""
    backup = config.backup_for(config.self_script)
    return "\n".join([
        "[USER-ACTION-REQUIRED]",
        "To use the healthy backup:",
        "1. Retrieve the file from the backup slot:",
        f"   docker cp {_container(config)}:{backup} {_host_path(config)}",
        "2. Verify the copied file",
        "3. Restart the service:",
        f"   {config.restart_command}",
        "",
        "The service will continue with the current instance but may fail.",
    ])


def bootstrap_guidance(config: BootguardConfig) -> str:
    """Next steps after a fresh template was scaffolded and archived."""
    return "\n".join([
        "[USER-GUIDANCE]",
        RULE,
        "OK: Initialization Complete! Next steps:",
        f"1. Access template at: {config.template_dir}",
        f"2. Prepare YOUR metadata in: {config.durable_dir}",
        "3. Restart the service to apply your configuration",
        RULE,
    ])


class ResultReporter:
    """Collect per-script verdicts and render a summary block."""

    def __init__(self, title: str = ""):
        self.title = title
        self.checks: List[Tuple[str, str, str]] = []  # (status, subject, message)
        self.passed = 0
        self.failed = 0

    def ok(self, subject: str, message: str):
        self.checks.append(("OK", subject, message))
        self.passed += 1

    def fail(self, subject: str, message: str):
        self.checks.append(("FAIL", subject, message))
        self.failed += 1

    def report(self, width: int = 60) -> str:
        lines = ["=" * width]
        if self.title:
            lines.append(self.title)
            lines.append("=" * width)

        current = None
        for status, subject, msg in self.checks:
            if subject != current:
                lines.append(f"[{subject}]")
                current = subject
            lines.append(f"  [{status}] {msg}")

        lines.append("-" * width)
        if self.failed == 0:
            lines.append(f"PASSED: {self.passed} checks passed")
        else:
            lines.append(f"FAILED: {self.failed} errors")
        lines.append("=" * width)
        return "\n".join(lines)

    @property
    def success(self) -> bool:
        return self.failed == 0
