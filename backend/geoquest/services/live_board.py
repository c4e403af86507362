"""
Client-side view of one running session.

Push events are hints and polls are authoritative, but neither may move a
team's displayed score below what was already confirmed: pushes can arrive
late or out of order relative to a poll taken in between.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping


@dataclass(frozen=True)
class BoardRow:
    team_name: str
    total_score: int
    checkpoint_index: int = 0


@dataclass(frozen=True)
class BoardSnapshot:
    version: int
    status: str | None
    rows: tuple[BoardRow, ...]

    def rank_of(self, team_name: str) -> int | None:
        for i, r in enumerate(self.rows):
            if r.team_name == team_name:
                return i + 1
        return None

    def score_of(self, team_name: str) -> int | None:
        return next((r.total_score for r in self.rows if r.team_name == team_name), None)


Observer = Callable[[BoardSnapshot], None]


class LiveBoard:
    def __init__(self) -> None:
        self._status: str | None = None
        self._scores: dict[str, int] = {}
        self._progress: dict[str, int] = {}
        self._version = 0
        self._observers: list[Observer] = []
        self._snapshot = BoardSnapshot(0, None, ())

    def snapshot(self) -> BoardSnapshot:
        return self._snapshot

    def observe(self, fn: Observer) -> Callable[[], None]:
        self._observers.append(fn)
        return lambda: self._observers.remove(fn)

    def _confirm_score(self, team: str, score: int) -> None:
        self._scores[team] = max(self._scores.get(team, 0), int(score))

    def _confirm_progress(self, team: str, index: int) -> None:
        self._progress[team] = max(self._progress.get(team, 0), int(index))

    def _publish(self) -> BoardSnapshot:
        self._version += 1
        names = set(self._scores) | set(self._progress)
        rows = sorted(
            (BoardRow(n, self._scores.get(n, 0), self._progress.get(n, 0)) for n in names),
            key=lambda r: (-r.total_score, r.team_name),
        )
        self._snapshot = BoardSnapshot(self._version, self._status, tuple(rows))
        for fn in list(self._observers):
            fn(self._snapshot)
        return self._snapshot

    def apply_event(self, msg: Mapping[str, Any]) -> BoardSnapshot:
        """Merge one pushed {event, data} message. Unknown events are ignored."""
        event, data = msg.get("event"), msg.get("data") or {}
        if event == "scoreUpdate":
            self._confirm_score(data["teamName"], data["totalScore"])
        elif event == "checkpointUnlocked":
            # the pointer sits one past the unlocked checkpoint
            self._confirm_progress(data["teamName"], int(data["checkpointIndex"]) + 1)
        elif event == "sessionStatusChanged":
            self._status = data["status"]
        else:
            return self._snapshot
        return self._publish()

    def apply_poll(self, status: str, rows: Iterable[Mapping[str, Any]]) -> BoardSnapshot:
        """Merge an authoritative leaderboard poll (rows with team_name/total_score)."""
        self._status = status
        for r in rows:
            self._confirm_score(r["team_name"], r["total_score"])
            if "current_checkpoint_index" in r:
                self._confirm_progress(r["team_name"], r["current_checkpoint_index"])
        return self._publish()
