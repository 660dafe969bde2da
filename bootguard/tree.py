"""
tree.py - Multi-stage validation of a metadata tree.

Stages run in order; each failure is fatal with its own code:
1. Version protocol  - version.yaml exists and equals the supported version (401, 402)
2. YAML syntax       - every *.yaml / *.yml parses; all failures aggregated (410)
3. Structure         - `metadata lint` passes                           (420)
4. Change detection  - `metadata diff`; "No changes found" ends validation
                       with UNCHANGED before stage 5                    (425)
5. Consistency       - `inconsistency status` reports is_consistent     (430)

Stage 5 also runs on UNCHANGED when check_consistency_when_unchanged is set.
"""
from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, List, Tuple

import yaml

from bootguard.codes import LifecycleFailure
from bootguard.context import RunContext
from bootguard.errors import LifecycleError
from bootguard.metadata_cli import MetadataCli

VERSION_FILE = "version.yaml"
YAML_SUFFIXES = (".yaml", ".yml")


class TreeVerdict(Enum):
    CHANGED = "changed"
    UNCHANGED = "unchanged"


def read_version(meta_dir: Path) -> Any:
    """Return the `version` value of a tree's version descriptor.

    Raises:
        FileNotFoundError: If version.yaml is missing
        UnicodeDecodeError: If it is not UTF-8
        yaml.YAMLError: If it does not parse
    """
    with open(Path(meta_dir) / VERSION_FILE, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data.get("version") if isinstance(data, dict) else None


def version_matches(value: Any, supported: int) -> bool:
    return value is not None and str(value).strip() == str(supported)


def yaml_errors(meta_dir: Path) -> List[Tuple[Path, str]]:
    """Parse every YAML file under `meta_dir`; return (file, error) for each failure."""
    errors = []
    for path in sorted(Path(meta_dir).rglob("*")):
        if not (path.is_file() and path.suffix in YAML_SUFFIXES):
            continue
        try:
            with open(path, "r", encoding="utf-8") as f:
                for _ in yaml.safe_load_all(f):
                    pass
        except (OSError, yaml.YAMLError, UnicodeDecodeError) as e:
            errors.append((path, str(e).splitlines()[0] if str(e) else type(e).__name__))
    return errors


class TreeValidator:
    """Run the five validation stages against a staging copy."""

    def __init__(self, ctx: RunContext, cli: MetadataCli):
        self.ctx = ctx
        self.cli = cli
        self.supported = ctx.config.supported_version

    def validate(self, meta_dir: Path) -> TreeVerdict:
        meta_dir = Path(meta_dir)
        log = self.ctx.log
        if not meta_dir.is_dir():
            raise LifecycleError(LifecycleFailure.TREE_MISSING, f"Metadata directory not found: {meta_dir}")

        log.info("[VALIDATION] Starting multi-stage verification...")
        self.check_version(meta_dir)
        self.check_yaml(meta_dir)
        self.check_structure(meta_dir)
        verdict = self.detect_changes(meta_dir)
        if verdict is TreeVerdict.UNCHANGED and not self.ctx.config.check_consistency_when_unchanged:
            return verdict
        self.check_consistency(meta_dir)
        log.info("[HEALTH][VALIDATION] OK: All validation stages passed.")
        return verdict

    def check_version(self, meta_dir: Path) -> None:
        version_file = meta_dir / VERSION_FILE
        if not version_file.is_file():
            raise LifecycleError(LifecycleFailure.VERSION_MISSING, f"Missing {VERSION_FILE}")
        try:
            version = read_version(meta_dir)
        except (OSError, yaml.YAMLError, UnicodeDecodeError) as e:
            raise LifecycleError(LifecycleFailure.VERSION_UNSUPPORTED, f"Unreadable {VERSION_FILE}: {e}")
        if not version_matches(version, self.supported):
            raise LifecycleError(
                LifecycleFailure.VERSION_UNSUPPORTED,
                f"Invalid version: {version} (required: v{self.supported})",
                details={"version": version, "required": self.supported},
            )
        self.ctx.log.info("[STAGE-PASS] OK: Version: v%s", version)

    def check_yaml(self, meta_dir: Path) -> None:
        self.ctx.log.info("[VALIDATION] Scanning YAML syntax...")
        errors = yaml_errors(meta_dir)
        for path, message in errors:
            self.ctx.log.error("[ERROR][YAML] Syntax error detected in: %s (%s)", path.name, message)
        if errors:
            raise LifecycleError(
                LifecycleFailure.YAML_SYNTAX,
                f"Total YAML syntax errors found: {len(errors)}",
                details={"files": [str(p.relative_to(meta_dir)) for p, _ in errors]},
            )
        self.ctx.log.info("[STAGE-PASS] OK: YAML syntax")

    def check_structure(self, meta_dir: Path) -> None:
        result = self.cli.lint(meta_dir)
        if not result.ok:
            raise LifecycleError(
                LifecycleFailure.STRUCTURE_LINT,
                "Invalid metadata relationships or structure detected.",
                details={"output": result.output},
            )
        self.ctx.log.info("[STAGE-PASS] OK: Structure integrity")

    def detect_changes(self, meta_dir: Path) -> TreeVerdict:
        diff = self.cli.diff(meta_dir)
        if not diff.result.ok:
            raise LifecycleError(
                LifecycleFailure.CHANGE_DETECTION,
                "Change detection failed.",
                details={"output": diff.result.output},
            )
        if not diff.changed:
            self.ctx.log.info("[CHANGE-DETECTION] OK: No changes detected.")
            return TreeVerdict.UNCHANGED
        self.ctx.log.warning("[CHANGE-DETECTION] WARNING: Changes identified.")
        if self.ctx.config.debug:
            self.ctx.log.debug("[DIFF-ANALYSIS] Change details:\n%s", diff.result.output)
        return TreeVerdict.CHANGED

    def check_consistency(self, meta_dir: Path) -> None:
        status = self.cli.consistency(meta_dir)
        if not status.consistent:
            raise LifecycleError(
                LifecycleFailure.INCONSISTENT,
                "Inconsistency detected",
                details=status.detail,
            )
        self.ctx.log.info("[STAGE-PASS] OK: Database consistency")
