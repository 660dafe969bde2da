#!/usr/bin/env python3
"""
bootguard - Container bootstrap guard for scripts and service metadata.

Usage:
    python -m bootguard run [--root DIR] [--debug]
    python -m bootguard validate SCRIPT [SCRIPT ...] [--json]
    python -m bootguard repair SOURCE DESTINATION
    python -m bootguard integrity [--script PATH] [--dry-run]
    python -m bootguard self-check
    python -m bootguard metadata

Exit status is the failure's stable code truncated to 8 bits; the full
code is always printed on the final `[RESULT]` line.
"""
import argparse
import json
import sys
from pathlib import Path

from bootguard import __version__
from bootguard.config import BootguardConfig, ScriptPair
from bootguard.context import RunContext, configure_logging
from bootguard.integrity import IntegrityManager, SelfRepairProtocol
from bootguard.lifecycle import run_lifecycle
from bootguard.orchestrator import Orchestrator
from bootguard.output import ResultReporter
from bootguard.repairer import repair
from bootguard.validator import validate


def exit_status(code: int) -> int:
    """Process exit status for a stable code (kept non-zero for failures)."""
    if code == 0:
        return 0
    return (code & 0xFF) or 1


def result(ctx: RunContext, outcome: str, code: int) -> int:
    ctx.emit(f"[RESULT] outcome={outcome} code={code}")
    return exit_status(code)


def cmd_run(args, ctx: RunContext) -> int:
    """Full run: scripts, readiness, final gate, metadata lifecycle."""
    report = Orchestrator(ctx).run()
    ctx.emit(report.result_line())
    return exit_status(report.code)


def cmd_validate(args, ctx: RunContext) -> int:
    """Validate scripts without modifying anything."""
    results = [validate(path, ctx.config.policy) for path in args.scripts]
    if args.json:
        ctx.emit(json.dumps([r.to_dict() for r in results], indent=2))
    else:
        reporter = ResultReporter("SCRIPT VALIDATION")
        for r in results:
            if r.passed:
                reporter.ok(r.path.name, "all layers passed")
            for issue in r.issues:
                reporter.fail(r.path.name, str(issue))
        ctx.emit(reporter.report())
    failed = [r for r in results if not r.passed]
    code = failed[0].codes[0] if failed else 0
    return result(ctx, "failed" if failed else "ok", code)


def cmd_repair(args, ctx: RunContext) -> int:
    """Repair SOURCE in isolation and promote it to DESTINATION."""
    outcome = repair(args.source, args.destination, ctx)
    if outcome.applied:
        ctx.emit(f"Applied: {', '.join(outcome.applied)}")
    return result(ctx, "repaired" if outcome.success else "failed", outcome.code)


def cmd_integrity(args, ctx: RunContext) -> int:
    """Restore or repair managed scripts."""
    config = ctx.config
    pairs = config.managed_pairs()
    if args.script:
        script = Path(args.script)
        pairs = [ScriptPair(script, config.backup_for(script))]

    manager = IntegrityManager(ctx)
    if args.dry_run:
        for pair in pairs:
            ctx.emit(f"{pair.name}: {manager.classify(pair).value}")
        return result(ctx, "ok", 0)

    for pair in pairs:
        outcome = manager.ensure(pair)
        ctx.emit(f"{pair.name}: {outcome.state.value} -> {'ok' if outcome.success else 'failed'}")
        if not outcome.success:
            if outcome.cause:
                ctx.emit(f"  cause: {outcome.cause}")
            return result(ctx, "failed", outcome.code)
    return result(ctx, "ok", 0)


def cmd_self_check(args, ctx: RunContext) -> int:
    """Run the self-repair protocol for the orchestrator's own script."""
    outcome = SelfRepairProtocol(ctx).run()
    return result(ctx, outcome.outcome.value, outcome.code)


def cmd_metadata(args, ctx: RunContext) -> int:
    """Run only the metadata lifecycle (bootstrap or reconcile)."""
    outcome = run_lifecycle(ctx)
    line = f"[RESULT] outcome={outcome.kind.value} code={outcome.code}"
    if outcome.revision_id:
        line += f" revision={outcome.revision_id}"
    ctx.emit(line)
    return exit_status(outcome.code)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="bootguard",
        description="Validate, repair and deploy container bootstrap state",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--root", help="Project root (default: $BOOTGUARD_ROOT or /hasura-project)")
    parser.add_argument("--debug", action="store_true", help="Verbose diagnostics")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # run
    p_run = subparsers.add_parser("run", help="Full bootstrap run")
    p_run.set_defaults(func=cmd_run)

    # validate
    p_validate = subparsers.add_parser("validate", help="Validate scripts (read-only)")
    p_validate.add_argument("scripts", nargs="+", type=Path, help="Scripts to validate")
    p_validate.add_argument("--json", action="store_true", help="Output as JSON")
    p_validate.set_defaults(func=cmd_validate)

    # repair
    p_repair = subparsers.add_parser("repair", help="Repair a script into a destination")
    p_repair.add_argument("source", type=Path, help="Script to repair")
    p_repair.add_argument("destination", type=Path, help="Where the repaired copy goes")
    p_repair.set_defaults(func=cmd_repair)

    # integrity
    p_integrity = subparsers.add_parser("integrity", help="Restore or repair managed scripts")
    p_integrity.add_argument("--script", help="Single script instead of the configured set")
    p_integrity.add_argument("--dry-run", action="store_true", help="Only report each pair's state")
    p_integrity.set_defaults(func=cmd_integrity)

    # self-check
    p_self = subparsers.add_parser("self-check", help="Self-repair protocol for the entry script")
    p_self.set_defaults(func=cmd_self_check)

    # metadata
    p_meta = subparsers.add_parser("metadata", help="Metadata lifecycle only")
    p_meta.set_defaults(func=cmd_metadata)

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    config = BootguardConfig.from_env(root=args.root)
    config.debug = config.debug or args.debug
    issues = config.validate()
    if issues:
        for issue in issues:
            print(f"Error: {issue}", file=sys.stderr)
        return 2

    configure_logging(config.debug)
    ctx = RunContext.create(config)
    ctx.log.info("[INIT] bootguard %s (%s)", __version__, args.command)
    return args.func(args, ctx)


if __name__ == "__main__":
    raise SystemExit(main())
