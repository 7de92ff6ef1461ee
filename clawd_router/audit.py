from __future__ import annotations

import json
import time
from pathlib import Path
from queue import Full, Queue
from threading import Thread
from typing import Any


def _encode(event: dict[str, Any]) -> str:
    return json.dumps(
        {"ts": round(time.time(), 3), **event},
        ensure_ascii=True,
        separators=(",", ":"),
        default=str,
    )


class DecisionAuditLog:
    """JSONL sink for routing decisions and proxy outcomes.

    ``record`` never blocks: lines go through a bounded queue to a daemon
    writer, and lines that do not fit are counted in ``dropped``.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        enabled: bool = True,
        max_queue_size: int = 4096,
    ) -> None:
        self.path = Path(path)
        self.dropped = 0
        self._lines: Queue[str | None] = Queue(maxsize=max(1, max_queue_size))
        self._writer: Thread | None = None
        if enabled:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._writer = Thread(
                target=self._drain, name="clawd-router-audit", daemon=True
            )
            self._writer.start()

    def record(self, event: dict[str, Any]) -> None:
        if self._writer is None:
            return
        try:
            self._lines.put_nowait(_encode(event))
        except Full:
            self.dropped += 1

    def close(self) -> None:
        writer, self._writer = self._writer, None
        if writer is None:
            return
        self._lines.put(None)
        writer.join(timeout=2.0)
        if self.dropped:
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(
                    _encode({"event": "audit_records_dropped", "dropped_count": self.dropped})
                    + "\n"
                )

    def _drain(self) -> None:
        with self.path.open("a", encoding="utf-8") as handle:
            for line in iter(self._lines.get, None):
                handle.write(line + "\n")
                handle.flush()
