"""
metadata_cli.py - Synchronous wrapper around the external metadata CLI.

Every call is blocking, has no implicit timeout, and returns a CliResult;
nothing here raises on a non-zero exit. Interpretation of the output
(changed / unchanged, consistent / inconsistent) happens here so callers
work with booleans.

Commands issued (hasura CLI layout):
    <cli> version
    <cli> init <project> --version <v> --skip-update-check
    <cli> metadata lint --metadata-dir <dir>
    <cli> metadata diff --metadata-dir <dir>
    <cli> metadata inconsistency status --metadata-dir <dir> --output json
    <cli> metadata apply --project <project>
"""
from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

NO_CHANGES_MARKER = "No changes found"


@dataclass
class CliResult:
    """Result of one CLI invocation."""
    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


@dataclass
class DiffResult:
    changed: bool
    result: CliResult


@dataclass
class ConsistencyResult:
    consistent: bool
    result: CliResult
    detail: Dict[str, Any] = field(default_factory=dict)


class MetadataCli:
    """Black-box client for scaffold / lint / diff / consistency / apply."""

    def __init__(self, binary: str = "hasura", runner: Callable = subprocess.run,
                 env: Optional[Dict[str, str]] = None):
        self.binary = binary
        self._runner = runner
        self._env = env

    def _run(self, *args: str) -> CliResult:
        argv = [self.binary, *args]
        try:
            proc = self._runner(argv, capture_output=True, text=True, env=self._env)
        except OSError as e:
            return CliResult(args=argv, returncode=127, stderr=str(e))
        return CliResult(args=argv, returncode=proc.returncode, stdout=proc.stdout or "", stderr=proc.stderr or "")

    def version(self) -> CliResult:
        return self._run("version")

    def scaffold(self, project_dir: Path, version: int) -> CliResult:
        return self._run("init", str(project_dir), "--version", str(version), "--skip-update-check")

    def lint(self, metadata_dir: Path) -> CliResult:
        return self._run("metadata", "lint", "--metadata-dir", str(metadata_dir))

    def diff(self, metadata_dir: Path) -> DiffResult:
        result = self._run("metadata", "diff", "--metadata-dir", str(metadata_dir))
        return DiffResult(changed=NO_CHANGES_MARKER not in result.output, result=result)

    def consistency(self, metadata_dir: Path) -> ConsistencyResult:
        result = self._run(
            "metadata", "inconsistency", "status",
            "--metadata-dir", str(metadata_dir), "--output", "json",
        )
        try:
            detail = json.loads(result.stdout) if result.stdout.strip() else {}
        except json.JSONDecodeError:
            detail = {"raw": result.stdout}
        if not isinstance(detail, dict):
            detail = {"raw": detail}
        consistent = result.ok and detail.get("is_consistent") is True
        return ConsistencyResult(consistent=consistent, result=result, detail=detail)

    def apply(self, project_dir: Path) -> CliResult:
        return self._run("metadata", "apply", "--project", str(project_dir))
