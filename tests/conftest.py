"""Shared fixtures: a project root under tmp_path, scripts, and a fake metadata CLI."""
import io
import logging
from pathlib import Path

import pytest

from bootguard.config import BootguardConfig
from bootguard.context import LOGGER_NAME, RunContext
from bootguard.metadata_cli import CliResult, MetadataCli

HEALTHY_SCRIPT = """#!/bin/bash
set -e
set -o pipefail

# Manage service metadata for the local deployment.
log() {
    echo "[$(date +%Y-%m-%dT%H:%M:%S)] $*"
}

main() {
    log "starting metadata manager"
    for dir in /tmp /var/tmp; do
        log "checking ${dir}"
    done
}

main "$@"
"""

# Content is sound but the directives and marker are gone and lines end in CRLF.
REPAIRABLE_SCRIPT = HEALTHY_SCRIPT.replace("#!/bin/bash\nset -e\nset -o pipefail\n", "").replace("\n", "\r\n")

# No rule can fix an unterminated `if`.
UNREPAIRABLE_SCRIPT = HEALTHY_SCRIPT.replace('main "$@"', 'if [ -n "$1" ]; then\n    main "$@"\n')


def write_script(path: Path, content: str, executable: bool = True) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content.encode("utf-8"))
    if executable:
        path.chmod(0o755)
    return path


def no_sleep(seconds):
    pass


def which_all(name):
    return f"/usr/bin/{name}"


class FakeCli(MetadataCli):
    """MetadataCli with canned process results.

    `responses` maps a command key ("version", "init", "lint", "diff",
    "inconsistency", "apply") to (returncode, stdout, stderr). `init`
    writes a template into <project>/metadata unless scaffold_files is False.
    """

    def __init__(self, scaffold_version=3, scaffold_files=True, **responses):
        super().__init__("hasura")
        self.calls = []
        self.scaffold_version = scaffold_version
        self.scaffold_files = scaffold_files
        self.responses = {
            "version": (0, "hasura version v2.36.0\n", ""),
            "init": (0, "", ""),
            "lint": (0, "", ""),
            "diff": (0, "- tables: []\n+ tables: [users]\n", ""),
            "inconsistency": (0, '{"is_consistent": true, "inconsistent_objects": []}', ""),
            "apply": (0, "INFO Metadata applied\n", ""),
        }
        self.responses.update(responses)

    def keys(self):
        return [key for key, _ in self.calls]

    def _run(self, *args):
        key = args[1] if args[0] == "metadata" else args[0]
        self.calls.append((key, list(args)))
        if key == "init" and self.scaffold_files and self.responses["init"][0] == 0:
            meta = Path(args[1]) / "metadata"
            meta.mkdir(parents=True, exist_ok=True)
            (meta / "version.yaml").write_text(f"version: {self.scaffold_version}\n")
            (meta / "actions.yaml").write_text("actions: []\ncustom_types: {}\n")
        rc, out, err = self.responses[key]
        return CliResult(args=[self.binary, *args], returncode=rc, stdout=out, stderr=err)


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


@pytest.fixture
def config(tmp_path):
    return BootguardConfig.for_root(tmp_path)


@pytest.fixture
def ctx(config):
    return RunContext.create(config, out=io.StringIO(), operation_id="1700000000-42")


@pytest.fixture
def fake_cli():
    return FakeCli()


@pytest.fixture
def durable_tree(config):
    """A valid user metadata tree in the durable directory."""
    durable = config.durable_dir
    (durable / "databases" / "default" / "tables").mkdir(parents=True)
    (durable / "version.yaml").write_text("version: 3\n")
    (durable / "databases" / "databases.yaml").write_text("- name: default\n  kind: postgres\n")
    (durable / "databases" / "default" / "tables" / "tables.yaml").write_text("- table:\n    name: users\n")
    return durable
