"""Bootguard configuration.

Loads paths and policies from the environment. Every default path is
relative to the project root so a single `--root` (or BOOTGUARD_ROOT)
relocates the whole layout.

Environment Variables:
    BOOTGUARD_ROOT: Project root (default: "/hasura-project")
    BOOTGUARD_SELF_SCRIPT: The orchestrator's own entry script
    BOOTGUARD_MANAGED_SCRIPTS: os.pathsep-separated operator scripts
    BOOTGUARD_BACKUP_DIR: Directory holding backup slots
    BOOTGUARD_DURABLE_DIR: Durable metadata tree
    BOOTGUARD_STAGING_DIR: Staging copy used for validation
    BOOTGUARD_RUNTIME_ROOT: Live runtime root (CLI project directory)
    BOOTGUARD_TEMPLATE_DIR: Read-only template archive
    BOOTGUARD_REVISIONS_DIR: Deployment revision log
    BOOTGUARD_READY_MARKER: Self-repair readiness marker
    BOOTGUARD_METADATA_CLI: Metadata CLI executable (default: "hasura")
    BOOTGUARD_SUPPORTED_VERSION: Metadata protocol version (default: 3)
    BOOTGUARD_SERVICE_ENDPOINT: Service base URL; unset skips readiness wait
    BOOTGUARD_CHECK_CONSISTENCY_WHEN_UNCHANGED: Run the consistency stage
        even when change detection reports nothing to apply (default: false)
    BOOTGUARD_DEBUG: Verbose diagnostics (default: false)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional, Tuple

DEFAULT_ROOT = "/hasura-project"


def _flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _number(env: Mapping[str, str], name: str, default, cast, issues: List[str]):
    value = env.get(name)
    if value is None:
        return default
    try:
        return cast(value)
    except ValueError:
        issues.append(f"{name} must be a number, got {value!r}")
        return default


@dataclass(frozen=True)
class ScriptPolicy:
    """Structural requirements a script must meet to be trusted."""

    min_size: int = 200
    marker_pattern: str = r"^#!.*(bash|sh)"
    default_marker: str = "#!/bin/bash"
    directives: Tuple[str, str] = ("set -e", "set -o pipefail")
    syntax_command: Tuple[str, ...] = ("bash", "-n")


@dataclass(frozen=True)
class ScriptPair:
    """A primary script path and its backup slot."""

    primary: Path
    backup: Path

    @property
    def name(self) -> str:
        return self.primary.name


@dataclass
class BootguardConfig:
    """Filesystem layout and behaviour switches for one run."""

    root: Path
    self_script: Path
    managed_scripts: List[Path]
    backup_dir: Path
    durable_dir: Path
    staging_dir: Path
    runtime_root: Path
    template_dir: Path
    revisions_dir: Path
    ready_marker: Path
    metadata_cli: str = "hasura"
    supported_version: int = 3
    workspace_wait_attempts: int = 3
    workspace_wait_interval: float = 1.0
    service_endpoint: Optional[str] = None
    readiness_attempts: int = 90
    readiness_interval: float = 1.0
    check_consistency_when_unchanged: bool = False
    debug: bool = False
    container_id: str = ""
    host_script_path: str = ""
    restart_command: str = "docker-compose restart hasura"
    policy: ScriptPolicy = field(default_factory=ScriptPolicy)
    env_issues: List[str] = field(default_factory=list)

    @property
    def cli_workspace(self) -> Path:
        """Workspace subdirectory created and owned by the metadata CLI."""
        return self.runtime_root / "metadata"

    def backup_for(self, script: Path) -> Path:
        return self.backup_dir / script.name

    def managed_pairs(self) -> List[ScriptPair]:
        return [ScriptPair(p, self.backup_for(p)) for p in self.managed_scripts]

    def self_pair(self) -> ScriptPair:
        return ScriptPair(self.self_script, self.backup_for(self.self_script))

    @classmethod
    def for_root(cls, root, **overrides) -> "BootguardConfig":
        """Build the default layout under a project root."""
        root = Path(root)
        durable = overrides.pop("durable_dir", root / "06-data" / "hasura" / "metadata")
        values = dict(
            root=root,
            self_script=root / "init-hasura.sh",
            managed_scripts=[root / "metadata-manager.sh"],
            backup_dir=root / "01-config" / "hasura" / "dos2unix",
            durable_dir=Path(durable),
            staging_dir=root / "user_metadata",
            runtime_root=root / "metadata",
            template_dir=root / "01-config" / "hasura" / "metadata",
            revisions_dir=Path(durable) / ".revisions",
            ready_marker=root / ".self-repair-ready",
        )
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_env(cls, root: Optional[Path] = None, env: Mapping[str, str] = None) -> "BootguardConfig":
        """Load configuration from environment variables.

        Args:
            root: Explicit project root (takes precedence over BOOTGUARD_ROOT)
            env: Mapping to read instead of os.environ (tests)
        """
        env = os.environ if env is None else env
        root = Path(root or env.get("BOOTGUARD_ROOT", DEFAULT_ROOT))

        def path(name: str) -> Optional[Path]:
            value = env.get(name)
            return Path(value) if value else None

        overrides = {}
        for attr, name in (
            ("self_script", "BOOTGUARD_SELF_SCRIPT"),
            ("backup_dir", "BOOTGUARD_BACKUP_DIR"),
            ("durable_dir", "BOOTGUARD_DURABLE_DIR"),
            ("staging_dir", "BOOTGUARD_STAGING_DIR"),
            ("runtime_root", "BOOTGUARD_RUNTIME_ROOT"),
            ("template_dir", "BOOTGUARD_TEMPLATE_DIR"),
            ("revisions_dir", "BOOTGUARD_REVISIONS_DIR"),
            ("ready_marker", "BOOTGUARD_READY_MARKER"),
        ):
            value = path(name)
            if value is not None:
                overrides[attr] = value

        managed = env.get("BOOTGUARD_MANAGED_SCRIPTS")
        if managed:
            overrides["managed_scripts"] = [Path(p) for p in managed.split(os.pathsep) if p]

        config = cls.for_root(root, **overrides)
        config.metadata_cli = env.get("BOOTGUARD_METADATA_CLI", config.metadata_cli)
        issues = config.env_issues
        config.supported_version = _number(env, "BOOTGUARD_SUPPORTED_VERSION", config.supported_version, int, issues)
        config.workspace_wait_attempts = _number(
            env, "BOOTGUARD_WORKSPACE_WAIT_ATTEMPTS", config.workspace_wait_attempts, int, issues
        )
        config.workspace_wait_interval = _number(
            env, "BOOTGUARD_WORKSPACE_WAIT_INTERVAL", config.workspace_wait_interval, float, issues
        )
        config.service_endpoint = env.get("BOOTGUARD_SERVICE_ENDPOINT") or None
        config.readiness_attempts = _number(
            env, "BOOTGUARD_READINESS_ATTEMPTS", config.readiness_attempts, int, issues
        )
        config.readiness_interval = _number(
            env, "BOOTGUARD_READINESS_INTERVAL", config.readiness_interval, float, issues
        )
        config.check_consistency_when_unchanged = _flag(
            env.get("BOOTGUARD_CHECK_CONSISTENCY_WHEN_UNCHANGED")
        )
        config.debug = _flag(env.get("BOOTGUARD_DEBUG"))
        config.container_id = env.get("CONTAINER_ID", env.get("HOSTNAME", ""))
        config.host_script_path = env.get("BOOTGUARD_HOST_SCRIPT_PATH", "")
        config.restart_command = env.get("BOOTGUARD_RESTART_COMMAND", config.restart_command)
        return config

    def validate(self) -> List[str]:
        """Validate configuration and return any issues."""
        issues = list(self.env_issues)
        if self.supported_version < 1:
            issues.append(f"Invalid supported version: {self.supported_version}")
        if self.workspace_wait_attempts < 0:
            issues.append("BOOTGUARD_WORKSPACE_WAIT_ATTEMPTS must be >= 0")
        if self.readiness_attempts < 1:
            issues.append("BOOTGUARD_READINESS_ATTEMPTS must be >= 1")
        if self.self_script in self.managed_scripts:
            issues.append(f"Self script is also listed as managed: {self.self_script}")
        staging = self.staging_dir.resolve()
        durable = self.durable_dir.resolve()
        if staging == durable:
            issues.append("Staging directory must differ from the durable metadata directory")
        elif durable in staging.parents or staging in durable.parents:
            issues.append("Staging and durable metadata directories must not be nested")
        return issues
