"""
Tests for bootguard/integrity.py - (primary, backup) integrity state machine.

S0 primary healthy    -> no-op
S1 backup healthy     -> restore primary from backup (301-303)
S2 both unhealthy     -> repair into backup, deploy to primary (304-307)
"""
import os

import pytest

from conftest import HEALTHY_SCRIPT, REPAIRABLE_SCRIPT, UNREPAIRABLE_SCRIPT, write_script

from bootguard import integrity
from bootguard.codes import IntegrityFailure
from bootguard.config import ScriptPair
from bootguard.hashing import checksum_matches, sidecar_path
from bootguard.integrity import IntegrityManager, IntegrityState, ensure_integrity
from bootguard.validator import validate


@pytest.fixture
def pair(config):
    return config.managed_pairs()[0]


class TestClassify:
    def test_states(self, ctx, pair):
        manager = IntegrityManager(ctx)
        write_script(pair.primary, REPAIRABLE_SCRIPT)
        assert manager.classify(pair) is IntegrityState.DUAL_CORRUPT
        write_script(pair.backup, HEALTHY_SCRIPT)
        assert manager.classify(pair) is IntegrityState.BACKUP_HEALTHY
        write_script(pair.primary, HEALTHY_SCRIPT)
        assert manager.classify(pair) is IntegrityState.PRIMARY_HEALTHY


class TestPrimaryHealthy:
    def test_no_op(self, ctx, pair):
        write_script(pair.primary, HEALTHY_SCRIPT)
        result = ensure_integrity(pair, ctx)
        assert result.success
        assert result.state is IntegrityState.PRIMARY_HEALTHY
        assert not pair.backup.exists()
        assert pair.primary.read_text() == HEALTHY_SCRIPT


class TestRestore:
    def test_restores_from_backup(self, ctx, pair):
        write_script(pair.primary, REPAIRABLE_SCRIPT)
        write_script(pair.backup, HEALTHY_SCRIPT)

        result = ensure_integrity(pair, ctx)

        assert result.success
        assert result.state is IntegrityState.BACKUP_HEALTHY
        assert pair.primary.read_text() == HEALTHY_SCRIPT
        assert os.access(pair.primary, os.X_OK)
        assert checksum_matches(pair.primary)
        assert pair.backup.read_text() == HEALTHY_SCRIPT

    def test_copy_failure(self, ctx, pair, monkeypatch):
        write_script(pair.primary, REPAIRABLE_SCRIPT)
        write_script(pair.backup, HEALTHY_SCRIPT)

        def boom(source, destination):
            raise PermissionError("read-only filesystem")

        monkeypatch.setattr(integrity, "copy_file", boom)
        result = ensure_integrity(pair, ctx)
        assert result.failure is IntegrityFailure.RESTORE_COPY
        assert result.code == 301

    def test_permission_failure(self, ctx, pair, monkeypatch):
        write_script(pair.primary, REPAIRABLE_SCRIPT)
        write_script(pair.backup, HEALTHY_SCRIPT)

        def boom(path):
            raise PermissionError("chmod denied")

        monkeypatch.setattr(integrity, "make_executable", boom)
        result = ensure_integrity(pair, ctx)
        assert result.code == 302

    def test_backup_with_stale_checksum_is_not_trusted(self, ctx, pair):
        write_script(pair.primary, REPAIRABLE_SCRIPT)
        write_script(pair.backup, HEALTHY_SCRIPT)
        sidecar_path(pair.backup).write_text("f" * 64 + "  metadata-manager.sh\n")

        result = ensure_integrity(pair, ctx)

        # Falls through to repair, which rewrites the backup and its record
        assert result.success
        assert result.state is IntegrityState.DUAL_CORRUPT
        assert checksum_matches(pair.backup)


class TestRepair:
    def test_repairs_and_deploys(self, ctx, pair):
        write_script(pair.primary, REPAIRABLE_SCRIPT)

        result = ensure_integrity(pair, ctx)

        assert result.success
        assert result.state is IntegrityState.DUAL_CORRUPT
        assert validate(pair.backup).passed
        assert validate(pair.primary).passed
        assert pair.primary.read_bytes() == pair.backup.read_bytes()

    def test_second_run_is_no_op(self, ctx, pair):
        write_script(pair.primary, REPAIRABLE_SCRIPT)
        ensure_integrity(pair, ctx)
        content = pair.primary.read_bytes()

        again = ensure_integrity(pair, ctx)

        assert again.state is IntegrityState.PRIMARY_HEALTHY
        assert pair.primary.read_bytes() == content

    def test_unrepairable_reports_cause(self, ctx, pair):
        write_script(pair.primary, UNREPAIRABLE_SCRIPT)

        result = ensure_integrity(pair, ctx)

        assert not result.success
        assert result.failure is IntegrityFailure.REPAIR
        assert result.code == 307
        assert result.cause == 206
        assert pair.primary.read_text() == UNREPAIRABLE_SCRIPT
        assert not pair.backup.exists()

    def test_missing_primary_and_backup(self, ctx, pair):
        result = ensure_integrity(pair, ctx)
        assert result.code == 307
        assert result.cause == 201

    def test_checksum_only_mismatch_not_auto_corrected(self, ctx, pair):
        write_script(pair.primary, HEALTHY_SCRIPT)
        sidecar_path(pair.primary).write_text("0" * 64 + "  metadata-manager.sh\n")

        result = ensure_integrity(pair, ctx)

        assert result.code == 307
        assert result.cause == 108
        assert pair.primary.read_text() == HEALTHY_SCRIPT

    def test_deploy_permission_failure(self, ctx, pair, monkeypatch):
        write_script(pair.primary, REPAIRABLE_SCRIPT)

        def chmod_once(path):
            if path == pair.primary:
                raise PermissionError("chmod denied")
            os.chmod(path, 0o755)

        # The repairer promotes with its own import; only the deploy step fails
        monkeypatch.setattr(integrity, "make_executable", chmod_once)
        result = ensure_integrity(pair, ctx)
        assert result.code == 305

    def test_custom_pair(self, ctx, tmp_path):
        pair = ScriptPair(tmp_path / "ops" / "tool.sh", tmp_path / "slots" / "tool.sh")
        write_script(pair.primary, REPAIRABLE_SCRIPT)
        assert ensure_integrity(pair, ctx).success
        assert pair.backup.is_file()
