"""External tooling checks, run before any mutating lifecycle step."""

import shutil
from typing import Dict

from bootguard.codes import ToolingFailure
from bootguard.context import RunContext
from bootguard.errors import ToolingError
from bootguard.metadata_cli import MetadataCli


def ensure_dependencies(ctx: RunContext, cli: MetadataCli, which=shutil.which) -> Dict[str, str]:
    """Verify the metadata CLI and the syntax-checker interpreter are on PATH.

    Returns:
        Mapping of tool name to resolved path

    Raises:
        ToolingError: For the first missing tool
    """
    log = ctx.log
    log.info("[DEPS] Verifying runtime dependencies...")
    found = {}

    checker = ctx.config.policy.syntax_command[0]
    resolved = which(checker)
    if not resolved:
        raise ToolingError(ToolingFailure.SYNTAX_CHECKER_MISSING,
                           f"Critical: syntax checker '{checker}' not found", tool=checker)
    found[checker] = resolved
    log.info("[CHECK] %s found at %s", checker, resolved)

    resolved = which(cli.binary)
    if not resolved:
        raise ToolingError(ToolingFailure.METADATA_CLI_MISSING,
                           f"Critical: {cli.binary} CLI not found", tool=cli.binary)
    found[cli.binary] = resolved

    version = cli.version()
    if version.ok and version.stdout.strip():
        log.info("[CHECK] %s %s verified", cli.binary, version.stdout.strip().splitlines()[-1])
    else:
        log.info("[CHECK] %s found at %s", cli.binary, resolved)

    log.info("[STATUS][DEPS] OK: All dependencies operational")
    return found
