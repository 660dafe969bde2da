"""
Tests for bootguard/lifecycle.py and bootguard/tree.py - Metadata lifecycle.

Scenarios:
- A: empty durable tree -> scaffold, archive template, print guidance
- B: changed tree -> stage, validate, apply, record revision, snapshot
- C: unchanged tree -> stop after change detection, nothing applied
Failure codes are checked per stage, and a failed apply must leave the
durable tree untouched.
"""
from pathlib import Path

import pytest

from conftest import FakeCli, no_sleep, which_all

from bootguard import tree
from bootguard.lifecycle import LifecycleController, OutcomeKind, Route
from bootguard.revisions import RevisionLog


def controller(ctx, cli, which=which_all):
    return LifecycleController(ctx, cli, which=which, sleep=no_sleep)


def snapshot(directory):
    return {
        str(p.relative_to(directory)): p.read_bytes()
        for p in sorted(directory.rglob("*"))
        if p.is_file()
    }


class TestRouting:
    def test_missing_durable_routes_to_bootstrap(self, ctx, fake_cli):
        assert controller(ctx, fake_cli).route() is Route.BOOTSTRAP

    def test_revisions_only_still_bootstrap(self, ctx, fake_cli):
        ctx.config.revisions_dir.mkdir(parents=True)
        (ctx.config.revisions_dir / "deploy-000001-20240101000000.log").write_text("{}")
        assert controller(ctx, fake_cli).route() is Route.BOOTSTRAP

    def test_populated_durable_routes_to_reconcile(self, ctx, fake_cli, durable_tree):
        assert controller(ctx, fake_cli).route() is Route.RECONCILE


class TestBootstrap:
    def test_scenario_a(self, ctx, fake_cli):
        outcome = controller(ctx, fake_cli).run()

        assert outcome.kind is OutcomeKind.BOOTSTRAPPED
        assert outcome.code == 0
        template = ctx.config.template_dir
        assert (template / "version.yaml").read_text() == "version: 3\n"
        assert (template / "actions.yaml").is_file()
        out = ctx.out.getvalue()
        assert "[USER-GUIDANCE]" in out
        assert "OK: Initialization Complete! Next steps:" in out
        assert str(ctx.config.durable_dir) in out
        assert fake_cli.keys() == ["version", "init"]

    def test_existing_runtime_is_reset(self, ctx, fake_cli):
        stale = ctx.config.runtime_root / "metadata" / "stale.yaml"
        stale.parent.mkdir(parents=True)
        stale.write_text("old: true\n")
        controller(ctx, fake_cli).run()
        assert not stale.exists()

    def test_template_archive_replaced(self, ctx, fake_cli):
        old = ctx.config.template_dir / "old.yaml"
        old.parent.mkdir(parents=True)
        old.write_text("x: 1\n")
        controller(ctx, fake_cli).run()
        assert not old.exists()

    def test_scaffold_failure(self, ctx):
        cli = FakeCli(init=(1, "", "init failed"))
        outcome = controller(ctx, cli).run()
        assert outcome.kind is OutcomeKind.FAILED
        assert outcome.route is Route.BOOTSTRAP
        assert outcome.code == 312

    def test_template_incomplete(self, ctx):
        outcome = controller(ctx, FakeCli(scaffold_files=False)).run()
        assert outcome.code == 313

    def test_template_version_mismatch(self, ctx):
        outcome = controller(ctx, FakeCli(scaffold_version=2)).run()
        assert outcome.code == 314
        assert not ctx.config.template_dir.exists()

    def test_template_version_not_utf8(self, ctx):
        class GarbledCli(FakeCli):
            def _run(self, *args):
                result = super()._run(*args)
                if args[0] == "init":
                    (Path(args[1]) / "metadata" / "version.yaml").write_bytes(b"version: \xff\n")
                return result

        outcome = controller(ctx, GarbledCli()).run()
        assert outcome.kind is OutcomeKind.FAILED
        assert outcome.code == 314

    def test_missing_cli(self, ctx, fake_cli):
        outcome = controller(ctx, fake_cli, which=lambda name: None if name == "hasura" else "/bin/" + name).run()
        assert outcome.code == 211
        assert fake_cli.calls == []

    def test_missing_syntax_checker(self, ctx, fake_cli):
        outcome = controller(ctx, fake_cli, which=lambda name: None).run()
        assert outcome.code == 212


class TestReconcile:
    def test_scenario_b_applies_and_records(self, ctx, fake_cli, durable_tree):
        outcome = controller(ctx, fake_cli).run()

        assert outcome.kind is OutcomeKind.APPLIED
        assert outcome.code == 0
        assert outcome.revision_id.startswith("deploy-000001-")
        assert fake_cli.keys() == ["version", "lint", "diff", "inconsistency", "apply"]

        workspace = ctx.config.cli_workspace
        assert (workspace / "databases" / "default" / "tables" / "tables.yaml").is_file()
        revisions = RevisionLog(ctx.config.revisions_dir)
        assert revisions.ids() == [outcome.revision_id]
        assert revisions.load(outcome.revision_id).operation_id == ctx.operation_id
        assert (durable_tree / "version.yaml").is_file()
        durable = snapshot(durable_tree)
        durable = {k: v for k, v in durable.items() if not k.startswith(".revisions")}
        assert durable == snapshot(ctx.config.staging_dir)

    def test_apply_targets_runtime_root(self, ctx, fake_cli, durable_tree):
        controller(ctx, fake_cli).run()
        apply_args = dict(fake_cli.calls)["apply"]
        assert apply_args == ["metadata", "apply", "--project", str(ctx.config.runtime_root)]

    def test_validation_runs_on_staging_copy(self, ctx, fake_cli, durable_tree):
        controller(ctx, fake_cli).run()
        lint_args = dict(fake_cli.calls)["lint"]
        assert lint_args[-1] == str(ctx.config.staging_dir)

    def test_revision_ids_increase(self, ctx, fake_cli, durable_tree):
        first = controller(ctx, fake_cli).run()
        second = controller(ctx, fake_cli).run()
        assert first.revision_id.startswith("deploy-000001-")
        assert second.revision_id.startswith("deploy-000002-")

    def test_revisions_survive_snapshot_and_skip_staging(self, ctx, fake_cli, durable_tree):
        controller(ctx, fake_cli).run()
        controller(ctx, fake_cli).run()
        assert len(list(ctx.config.revisions_dir.iterdir())) == 2
        assert not (ctx.config.staging_dir / ".revisions").exists()

    def test_snapshot_replaces_durable_contents(self, ctx, fake_cli, durable_tree):
        outcome = controller(ctx, fake_cli).run()
        assert outcome.ok
        assert set(snapshot(durable_tree)) >= {"version.yaml", "databases/databases.yaml"}

    def test_scenario_c_no_changes(self, ctx, durable_tree):
        cli = FakeCli(diff=(0, "INFO No changes found\n", ""))
        before = snapshot(durable_tree)

        outcome = controller(ctx, cli).run()

        assert outcome.kind is OutcomeKind.NO_CHANGES
        assert outcome.code == 0
        assert "apply" not in cli.keys()
        assert "inconsistency" not in cli.keys()
        assert snapshot(durable_tree) == before
        assert RevisionLog(ctx.config.revisions_dir).ids() == []

    def test_unchanged_consistency_check_when_enabled(self, ctx, durable_tree):
        ctx.config.check_consistency_when_unchanged = True
        cli = FakeCli(diff=(0, "No changes found", ""), inconsistency=(0, '{"is_consistent": false}', ""))
        outcome = controller(ctx, cli).run()
        assert outcome.code == 430


class TestValidationStages:
    def test_missing_version_file(self, ctx, fake_cli, durable_tree):
        (durable_tree / "version.yaml").unlink()
        outcome = controller(ctx, fake_cli).run()
        assert outcome.code == 401

    def test_unsupported_version(self, ctx, fake_cli, durable_tree):
        (durable_tree / "version.yaml").write_text("version: 2\n")
        before = snapshot(durable_tree)
        outcome = controller(ctx, fake_cli).run()
        assert outcome.code == 402
        # Short-circuit: no later stage ran
        assert fake_cli.keys() == ["version"]
        assert snapshot(durable_tree) == before

    def test_version_not_utf8(self, ctx, fake_cli, durable_tree):
        (durable_tree / "version.yaml").write_bytes(b"version: \xff\xfe3\n")
        before = snapshot(durable_tree)
        outcome = controller(ctx, fake_cli).run()
        assert outcome.kind is OutcomeKind.FAILED
        assert outcome.code == 402
        assert snapshot(durable_tree) == before

    def test_yaml_errors_aggregated(self, ctx, fake_cli, durable_tree):
        (durable_tree / "bad_one.yaml").write_text("key: [unclosed\n")
        (durable_tree / "databases" / "bad_two.yml").write_text("a: b: c\n")
        outcome = controller(ctx, fake_cli).run()
        assert outcome.code == 410
        assert "2" in outcome.message
        assert "lint" not in fake_cli.keys()

    def test_unreadable_yaml_counted(self, ctx, fake_cli, durable_tree, monkeypatch):
        unreadable = durable_tree / "databases" / "databases.yaml"

        def guarded_open(path, *args, **kwargs):
            if Path(path) == unreadable:
                raise PermissionError(13, "Permission denied", str(path))
            return open(path, *args, **kwargs)

        monkeypatch.setattr(tree, "open", guarded_open, raising=False)
        outcome = controller(ctx, fake_cli).run()
        assert outcome.code == 410
        assert "1" in outcome.message

    def test_lint_failure(self, ctx, durable_tree):
        cli = FakeCli(lint=(1, "", "relationship points to unknown table"))
        outcome = controller(ctx, cli).run()
        assert outcome.code == 420
        assert "diff" not in cli.keys()

    def test_diff_failure(self, ctx, durable_tree):
        cli = FakeCli(diff=(1, "", "connection refused"))
        outcome = controller(ctx, cli).run()
        assert outcome.code == 425

    def test_inconsistent(self, ctx, durable_tree):
        cli = FakeCli(inconsistency=(0, '{"is_consistent": false, "inconsistent_objects": [{}]}', ""))
        outcome = controller(ctx, cli).run()
        assert outcome.code == 430
        assert "apply" not in cli.keys()


class TestApplyFailure:
    def test_durable_tree_untouched(self, ctx, durable_tree):
        cli = FakeCli(apply=(1, "", "metadata apply failed"))
        before = snapshot(durable_tree)

        outcome = controller(ctx, cli).run()

        assert outcome.kind is OutcomeKind.FAILED
        assert outcome.code == 505
        assert snapshot(durable_tree) == before
        assert RevisionLog(ctx.config.revisions_dir).ids() == []
        # Staging and the CLI workspace are kept for inspection
        assert (ctx.config.staging_dir / "version.yaml").is_file()
        assert (ctx.config.cli_workspace / "version.yaml").is_file()

    def test_rerun_after_failure(self, ctx, durable_tree):
        controller(ctx, FakeCli(apply=(1, "", "boom"))).run()
        outcome = controller(ctx, FakeCli()).run()
        assert outcome.kind is OutcomeKind.APPLIED


@pytest.mark.parametrize("scaffold_version,expected", [(3, 0), (1, 314)])
def test_bootstrap_version_gate(ctx, scaffold_version, expected):
    outcome = controller(ctx, FakeCli(scaffold_version=scaffold_version)).run()
    assert outcome.code == expected
