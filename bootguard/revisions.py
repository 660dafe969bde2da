"""
revisions.py - Append-only log of successful deployments.

One file per revision under the revisions directory:
    <revisions_dir>/<REVISION_ID>.log   (JSON record)

Revision ids are `deploy-<seq:06d>-<yyyymmddHHMMSS>`. `seq` is one more
than the highest sequence already on disk, so ids sort in creation order
and strictly increase even within the same second. Existing files are
never rewritten; creating one that already exists is an error.
"""
from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

REVISION_SUFFIX = ".log"
REVISION_RE = re.compile(r"^deploy-(\d{6,})-(\d{14})$")


@dataclass(frozen=True)
class DeploymentRevision:
    revision_id: str
    sequence: int
    timestamp: str
    operation_id: str = ""
    source: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


def parse_sequence(revision_id: str) -> Optional[int]:
    match = REVISION_RE.match(revision_id)
    return int(match.group(1)) if match else None


class RevisionLog:
    """Read and append deployment revisions in one directory."""

    def __init__(self, revisions_dir: Path):
        self.dir = Path(revisions_dir)

    def ids(self) -> List[str]:
        """Known revision ids, oldest first."""
        if not self.dir.is_dir():
            return []
        found = []
        for path in self.dir.glob(f"*{REVISION_SUFFIX}"):
            seq = parse_sequence(path.stem)
            if seq is not None:
                found.append((seq, path.stem))
        return [rid for _, rid in sorted(found)]

    def latest(self) -> Optional[str]:
        ids = self.ids()
        return ids[-1] if ids else None

    def next_id(self, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        latest = self.latest()
        seq = (parse_sequence(latest) + 1) if latest else 1
        return f"deploy-{seq:06d}-{now.strftime('%Y%m%d%H%M%S')}"

    def load(self, revision_id: str) -> DeploymentRevision:
        data = json.loads((self.dir / f"{revision_id}{REVISION_SUFFIX}").read_text(encoding="utf-8"))
        return DeploymentRevision(**data)

    def record(self, operation_id: str = "", source: str = "",
               now: Optional[datetime] = None) -> DeploymentRevision:
        """Write a new immutable revision record.

        Raises:
            FileExistsError: If the computed id already exists
            OSError: If the directory or file cannot be written
        """
        now = now or datetime.now(timezone.utc)
        revision_id = self.next_id(now)
        revision = DeploymentRevision(
            revision_id=revision_id,
            sequence=parse_sequence(revision_id),
            timestamp=now.isoformat(),
            operation_id=operation_id,
            source=source,
        )
        self.dir.mkdir(parents=True, exist_ok=True)
        path = self.dir / f"{revision_id}{REVISION_SUFFIX}"
        with open(path, "x", encoding="utf-8") as f:
            f.write(json.dumps(revision.to_dict(), indent=2) + "\n")
        return revision
