"""
context.py - Per-run context passed to every component.

A RunContext is created once at the top of a run and discarded when the
run ends. It replaces process-wide state: the configuration, the
operation id that tags every log record, the logger itself, and the
stream that receives operator-facing text.

Usage:
    ctx = RunContext.create(config)
    ctx.log.info("[SCRIPT] Verifying %s integrity", name)
    ctx.emit("[USER-GUIDANCE] ...")
"""
from __future__ import annotations

import logging
import os
import random
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, MutableMapping, Optional, TextIO, Tuple

from bootguard.config import BootguardConfig

LOGGER_NAME = "bootguard"


class OperationAdapter(logging.LoggerAdapter):
    """Prefix every record with the run's operation id."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['operation_id']}] {msg}", kwargs


def new_operation_id() -> str:
    """Unique id for one run: `<epoch seconds>-<random>`."""
    return f"{int(time.time())}-{random.randint(0, 32767)}"


@dataclass
class RunContext:
    """Explicit state for one orchestrator run."""

    config: BootguardConfig
    operation_id: str
    log: logging.LoggerAdapter
    out: TextIO = field(default_factory=lambda: sys.stdout)
    started_at: str = ""

    @classmethod
    def create(
        cls,
        config: BootguardConfig,
        out: Optional[TextIO] = None,
        operation_id: Optional[str] = None,
    ) -> "RunContext":
        operation_id = operation_id or new_operation_id()
        logger = logging.getLogger(LOGGER_NAME)
        return cls(
            config=config,
            operation_id=operation_id,
            log=OperationAdapter(logger, {"operation_id": operation_id}),
            out=out if out is not None else sys.stdout,
            started_at=datetime.now(timezone.utc).isoformat(),
        )

    @property
    def pid(self) -> int:
        return os.getpid()

    def emit(self, text: str) -> None:
        """Write operator-facing text. This output is contractual."""
        print(text, file=self.out)
        self.out.flush()


def configure_logging(debug: bool = False, stream: Optional[TextIO] = None) -> None:
    """Attach a stream handler to the bootguard logger (idempotent)."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    if not logger.handlers:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        logger.addHandler(handler)
