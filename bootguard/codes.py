"""
codes.py - Failure enumerations and the stable exit-code table.

Each component owns a closed enumeration of the ways it can fail. Operators
script against integers, so every member is mapped exactly once in
STABLE_CODES. Internal refactors may rename members; they must not change
the integers.

Code ranges:
| Range | Phase |
|-------|-------|
| 1xx | Script validation, orchestrator gates |
| 20x | Script repair |
| 21x | External tooling |
| 30x | Script integrity (restore / repair chain) |
| 31x | Metadata bootstrap |
| 4xx | Metadata validation stages |
| 5xx | Metadata deployment |
| 6xx | Self-repair |
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, Union


class ScriptCheck(Enum):
    """Validator checks in execution order (layer 6 yields one per directive)."""
    EXISTS = "exists"
    MIN_SIZE = "min_size"
    ENTRY_MARKER = "entry_marker"
    LINE_ENDINGS = "line_endings"
    SYNTAX = "syntax"
    DIRECTIVE_ERREXIT = "directive_errexit"
    DIRECTIVE_PIPEFAIL = "directive_pipefail"
    CHECKSUM = "checksum"


class RepairFailure(Enum):
    ISOLATION_COPY = "isolation_copy"
    LINE_ENDINGS = "line_endings"
    ENTRY_MARKER = "entry_marker"
    FIRST_DIRECTIVE = "first_directive"
    SECOND_DIRECTIVE = "second_directive"
    POST_REPAIR_VALIDATION = "post_repair_validation"
    PROMOTION = "promotion"


class IntegrityFailure(Enum):
    RESTORE_COPY = "restore_copy"
    RESTORE_PERMISSIONS = "restore_permissions"
    RESTORE_VALIDATION = "restore_validation"
    DEPLOY_COPY = "deploy_copy"
    DEPLOY_PERMISSIONS = "deploy_permissions"
    DEPLOY_VALIDATION = "deploy_validation"
    REPAIR = "repair"


class SelfRepairFailure(Enum):
    CAPTURE = "capture"
    REPAIR = "repair"
    VALIDATION = "validation"
    PERSIST = "persist"


class ToolingFailure(Enum):
    METADATA_CLI_MISSING = "metadata_cli_missing"
    SYNTAX_CHECKER_MISSING = "syntax_checker_missing"


class OrchestratorFailure(Enum):
    SERVICE_NOT_READY = "service_not_ready"
    FINAL_VALIDATION = "final_validation"


class LifecycleFailure(Enum):
    # Bootstrap
    RUNTIME_RESET = "runtime_reset"
    SCAFFOLD = "scaffold"
    TEMPLATE_INCOMPLETE = "template_incomplete"
    TEMPLATE_VERSION = "template_version"
    ARCHIVE_PREPARE = "archive_prepare"
    ARCHIVE_COPY = "archive_copy"
    ARCHIVE_VALIDATION = "archive_validation"
    # Reconcile: staging and validation stages
    TREE_MISSING = "tree_missing"
    VERSION_MISSING = "version_missing"
    VERSION_UNSUPPORTED = "version_unsupported"
    STAGING_PREPARE = "staging_prepare"
    STAGING_TRANSFER = "staging_transfer"
    YAML_SYNTAX = "yaml_syntax"
    STRUCTURE_LINT = "structure_lint"
    CHANGE_DETECTION = "change_detection"
    INCONSISTENT = "inconsistent"
    # Reconcile: deployment
    RUNTIME_ROOT = "runtime_root"
    CLI_WORKSPACE = "cli_workspace"
    WORKSPACE_PURGE = "workspace_purge"
    WORKSPACE_COPY = "workspace_copy"
    APPLY = "apply"
    DURABLE_PREPARE = "durable_prepare"
    DURABLE_COPY = "durable_copy"
    DURABLE_VALIDATION = "durable_validation"
    REVISION_WRITE = "revision_write"


Failure = Union[
    ScriptCheck,
    RepairFailure,
    IntegrityFailure,
    SelfRepairFailure,
    ToolingFailure,
    OrchestratorFailure,
    LifecycleFailure,
]


STABLE_CODES: Dict[Failure, int] = {
    ScriptCheck.EXISTS: 101,
    ScriptCheck.MIN_SIZE: 102,
    ScriptCheck.ENTRY_MARKER: 103,
    ScriptCheck.LINE_ENDINGS: 104,
    ScriptCheck.SYNTAX: 105,
    ScriptCheck.DIRECTIVE_ERREXIT: 106,
    ScriptCheck.DIRECTIVE_PIPEFAIL: 107,
    ScriptCheck.CHECKSUM: 108,

    OrchestratorFailure.SERVICE_NOT_READY: 120,
    OrchestratorFailure.FINAL_VALIDATION: 130,

    RepairFailure.ISOLATION_COPY: 201,
    RepairFailure.LINE_ENDINGS: 202,
    RepairFailure.ENTRY_MARKER: 203,
    RepairFailure.FIRST_DIRECTIVE: 204,
    RepairFailure.SECOND_DIRECTIVE: 205,
    RepairFailure.POST_REPAIR_VALIDATION: 206,
    RepairFailure.PROMOTION: 207,

    ToolingFailure.METADATA_CLI_MISSING: 211,
    ToolingFailure.SYNTAX_CHECKER_MISSING: 212,

    IntegrityFailure.RESTORE_COPY: 301,
    IntegrityFailure.RESTORE_PERMISSIONS: 302,
    IntegrityFailure.RESTORE_VALIDATION: 303,
    IntegrityFailure.DEPLOY_COPY: 304,
    IntegrityFailure.DEPLOY_PERMISSIONS: 305,
    IntegrityFailure.DEPLOY_VALIDATION: 306,
    IntegrityFailure.REPAIR: 307,

    LifecycleFailure.RUNTIME_RESET: 311,
    LifecycleFailure.SCAFFOLD: 312,
    LifecycleFailure.TEMPLATE_INCOMPLETE: 313,
    LifecycleFailure.TEMPLATE_VERSION: 314,
    LifecycleFailure.ARCHIVE_PREPARE: 315,
    LifecycleFailure.ARCHIVE_COPY: 316,
    LifecycleFailure.ARCHIVE_VALIDATION: 317,

    LifecycleFailure.TREE_MISSING: 400,
    LifecycleFailure.VERSION_MISSING: 401,
    LifecycleFailure.VERSION_UNSUPPORTED: 402,
    LifecycleFailure.STAGING_PREPARE: 405,
    LifecycleFailure.STAGING_TRANSFER: 406,
    LifecycleFailure.YAML_SYNTAX: 410,
    LifecycleFailure.STRUCTURE_LINT: 420,
    LifecycleFailure.CHANGE_DETECTION: 425,
    LifecycleFailure.INCONSISTENT: 430,

    LifecycleFailure.RUNTIME_ROOT: 501,
    LifecycleFailure.CLI_WORKSPACE: 502,
    LifecycleFailure.WORKSPACE_PURGE: 503,
    LifecycleFailure.WORKSPACE_COPY: 504,
    LifecycleFailure.APPLY: 505,
    LifecycleFailure.DURABLE_PREPARE: 506,
    LifecycleFailure.DURABLE_COPY: 507,
    LifecycleFailure.DURABLE_VALIDATION: 508,
    LifecycleFailure.REVISION_WRITE: 509,

    SelfRepairFailure.CAPTURE: 601,
    SelfRepairFailure.REPAIR: 602,
    SelfRepairFailure.VALIDATION: 603,
    SelfRepairFailure.PERSIST: 604,
}


def code_for(failure: Failure) -> int:
    """Return the stable numeric code for a failure member.

    Raises:
        KeyError: If the member has no entry in STABLE_CODES
    """
    return STABLE_CODES[failure]


__all__ = [
    "ScriptCheck",
    "RepairFailure",
    "IntegrityFailure",
    "SelfRepairFailure",
    "ToolingFailure",
    "OrchestratorFailure",
    "LifecycleFailure",
    "Failure",
    "STABLE_CODES",
    "code_for",
]
