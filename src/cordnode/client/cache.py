"""Local JSON cache of the user record that survives restarts.

A cached balance is never lowered by a server fetch: reconciliation keeps
the larger of local and server for the counters below.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Counters that only grow; period earnings reset and are not listed
MONOTONIC_FIELDS = (
    "currentBalance",
    "totalEarned",
    "referralEarnings",
    "tasksCompleted",
    "totalReferrals",
)


def reconcile(local: dict[str, Any] | None, server: dict[str, Any]) -> dict[str, Any]:
    """Server record with each monotonic field raised to the local value if larger."""
    merged = dict(server)
    if not local or local.get("id") != server.get("id"):
        return merged
    for key in MONOTONIC_FIELDS:
        if key in local and key in server and local[key] is not None and server[key] is not None:
            merged[key] = max(local[key], server[key])
    return merged


class LocalSessionCache:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> dict[str, Any] | None:
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Discarding unreadable session cache %s", self.path, exc_info=True)
            return None

    def save(self, user: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(user), encoding="utf-8")
        tmp.replace(self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)

    def reconcile(self, server: dict[str, Any]) -> dict[str, Any]:
        """Merge ``server`` with the cached record, persist and return the result."""
        merged = reconcile(self.load(), server)
        self.save(merged)
        return merged
