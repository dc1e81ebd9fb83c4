"""
Reconstruct contiguous on/off sessions from the power event log
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from database.models import PowerLogEntry, format_timestamp, utc_now


@dataclass
class PowerSession:
    """A span during which a unit stayed on or off"""
    unit_name: str
    state: str
    start_at: datetime
    end_at: Optional[datetime]
    duration_seconds: float
    id: str = ''

    def to_api(self) -> Dict:
        return {
            "id": self.id,
            "unitName": self.unit_name,
            "state": self.state,
            "startAt": format_timestamp(self.start_at),
            "endAt": format_timestamp(self.end_at),
            "durationMs": int(self.duration_seconds * 1000),
        }


def build_power_sessions(entries: List[PowerLogEntry], now: Optional[datetime] = None) -> List[PowerSession]:
    """
    Pair consecutive events per unit into sessions.

    An on followed by off gives an "on" session, off followed by on an "off"
    session; repeated identical actions produce nothing. The latest event
    of each unit opens a session running until `now`. Zero or negative
    spans are dropped. Result is ordered by start time, newest first.
    """
    now = now or utc_now()
    by_unit: Dict[str, List[PowerLogEntry]] = {}
    for entry in sorted((e for e in entries if e.at is not None), key=lambda e: e.at):
        by_unit.setdefault(entry.unit_name or '', []).append(entry)

    sessions: List[PowerSession] = []
    for unit_name, events in by_unit.items():
        for prev, current in zip(events, events[1:]):
            if prev.action == current.action:
                continue
            duration = (current.at - prev.at).total_seconds()
            if duration > 0:
                sessions.append(PowerSession(
                    id=f"{unit_name}-{prev.id}-{current.id}-{prev.action}",
                    unit_name=unit_name,
                    state=prev.action,
                    start_at=prev.at,
                    end_at=current.at,
                    duration_seconds=duration,
                ))

        last = events[-1]
        duration = (now - last.at).total_seconds()
        if duration > 0:
            sessions.append(PowerSession(
                id=f"{unit_name}-{last.id}-open-{last.action}",
                unit_name=unit_name,
                state=last.action,
                start_at=last.at,
                end_at=None,
                duration_seconds=duration,
            ))

    sessions.sort(key=lambda s: s.start_at, reverse=True)
    return sessions
