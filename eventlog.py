from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class LogEntry:
    time_ms: int
    tick: int
    source: str
    text: str

    def __str__(self) -> str:
        return f"[{self.source}] t={self.time_ms}ms {self.text}"


class EventLog:
    """
    Append-only narration of everything the simulation does.

    Entries carry the simulated clock, so two runs with the same commands
    produce the same log. Console echo follows the cfg flags.
    """

    def __init__(self, cfg: Dict[str, Any]):
        self.cfg = cfg
        self.entries: List[LogEntry] = []
        self.time_ms = 0
        self.tick = 0

    def set_clock(self, time_ms: int, tick: int):
        self.time_ms = time_ms
        self.tick = tick

    def add(self, source: str, text: str) -> LogEntry:
        entry = LogEntry(self.time_ms, self.tick, source, text)
        self.entries.append(entry)
        limit = self.cfg.get("max_log_entries")
        if limit is not None and len(self.entries) > limit:
            del self.entries[: len(self.entries) - limit]
        if self.cfg.get("log_to_console", False):
            print(entry)
        return entry

    def since(self, tick: int) -> List[LogEntry]:
        return [e for e in self.entries if e.tick >= tick]

    def find(self, needle: str, source: Optional[str] = None) -> List[LogEntry]:
        return [
            e for e in self.entries
            if needle in e.text and (source is None or e.source == source)
        ]

    def __len__(self) -> int:
        return len(self.entries)
