"""
workspace.py - Isolated scratch workspace for script repair.

Implements the isolation model used by the repairer and the self-repair
protocol:
1. Every repair runs against a copy inside a uniquely named temp directory
2. Nothing at a stable path changes until the final promotion copy
3. The workspace is destroyed on exit, whether the repair succeeded or not

Usage:
    with IsolatedWorkspace("repair", log=ctx.log) as ws:
        work_file = ws.capture(source)
        ...  # mutate work_file
    # workspace removed here
"""

import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


class IsolatedWorkspace:
    """Context manager for a disposable, per-invocation directory.

    Properties:
        - Isolation: lives under the system temp dir, never under a managed path
        - Uniqueness: mkdtemp guarantees a fresh directory per invocation
        - Ephemerality: always removed on exit
    """

    def __init__(self, purpose: str, log=None):
        """Initialize isolated workspace.

        Args:
            purpose: Short label used in the directory prefix
            log: Optional logger (or adapter) for lifecycle events
        """
        self.purpose = purpose
        self.log = log
        self.path: Optional[Path] = None
        self.audit_log: List[Dict[str, Any]] = []

    def __enter__(self) -> "IsolatedWorkspace":
        self.path = Path(tempfile.mkdtemp(prefix=f"bootguard-{self.purpose}-"))
        self._log_event("WORKSPACE_CREATED", {"workspace_path": str(self.path)})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self._log_event("WORKSPACE_ERROR", {
                "error_type": exc_type.__name__,
                "error_message": str(exc_val),
            })
        self._destroy()
        return False  # Don't suppress exceptions

    def capture(self, source: Path) -> Path:
        """Copy `source` into the workspace under its own name.

        Raises:
            OSError: If the source cannot be read or the copy fails
        """
        if self.path is None:
            raise RuntimeError("Workspace not initialized")
        target = self.path / Path(source).name
        shutil.copyfile(source, target)
        self._log_event("WORKSPACE_CAPTURED", {"source": str(source), "copy": str(target)})
        return target

    def _destroy(self) -> None:
        if self.path and self.path.exists():
            shutil.rmtree(self.path, ignore_errors=True)
            self._log_event("WORKSPACE_DESTROYED", {"workspace_path": str(self.path)})
        self.path = None

    def _log_event(self, event_type: str, data: Dict[str, Any]) -> None:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "purpose": self.purpose,
            **data,
        }
        self.audit_log.append(entry)
        if self.log is not None:
            self.log.debug("[WORKSPACE] %s %s", event_type, data)
