"""
Half-open time intervals [start, end) for courts and couples.
"""
from bisect import insort
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

Interval = Tuple[datetime, datetime]


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """True when [a_start, a_end) and [b_start, b_end) share any instant."""
    return a_start < b_end and b_start < a_end


@dataclass(frozen=True)
class CourtWindow:
    """A court available to the tournament during [start, end)."""

    court_id: int
    start: datetime
    end: datetime
    name: Optional[str] = None

    def clipped(self, start: Optional[datetime], end: Optional[datetime]) -> Optional["CourtWindow"]:
        """Intersection with [start, end); None when empty."""
        new_start = max(self.start, start) if start else self.start
        new_end = min(self.end, end) if end else self.end
        if new_start >= new_end:
            return None
        return CourtWindow(court_id=self.court_id, start=new_start, end=new_end, name=self.name)

    def contains(self, start: datetime, end: datetime) -> bool:
        return self.start <= start and end <= self.end


class CourtTimeline:
    """Busy intervals of one court inside its availability window."""

    def __init__(self, window: CourtWindow):
        self.window = window
        self._busy: List[Interval] = []
        # Minutes placed by the current calculation (fixed bookings excluded)
        self.assigned_minutes = 0
        # End of the last interval placed by the current calculation
        self.free_at = window.start

    @property
    def court_id(self) -> int:
        return self.window.court_id

    def block(self, start: datetime, end: datetime) -> None:
        """Record an existing booking that must not be overlapped."""
        insort(self._busy, (start, end))

    def reserve(self, start: datetime, end: datetime) -> None:
        insort(self._busy, (start, end))
        self.assigned_minutes += int((end - start).total_seconds() // 60)
        self.free_at = max(self.free_at, end)

    def earliest_fit(self, not_before: datetime, duration: timedelta) -> Optional[datetime]:
        """Earliest start >= not_before where `duration` fits without overlap, or None."""
        t = max(not_before, self.window.start)
        for busy_start, busy_end in self._busy:
            if busy_end <= t:
                continue
            if busy_start >= t + duration:
                break
            t = busy_end
        if t + duration > self.window.end:
            return None
        return t


class CoupleCalendar:
    """Intervals each couple is already committed to."""

    def __init__(self) -> None:
        self._intervals: Dict[int, List[Interval]] = {}

    def add(self, couple_ids: Iterable[int], start: datetime, end: datetime) -> None:
        for cid in couple_ids:
            insort(self._intervals.setdefault(cid, []), (start, end))

    def first_clash(
        self, couple_ids: Iterable[int], start: datetime, end: datetime, rest: timedelta
    ) -> Optional[datetime]:
        """
        If [start, end) breaks any couple's commitments (padded by `rest` on
        both sides), return the earliest instant worth retrying from.
        """
        retry: Optional[datetime] = None
        for cid in couple_ids:
            for busy_start, busy_end in self._intervals.get(cid, ()):
                if overlaps(start, end + rest, busy_start, busy_end + rest):
                    candidate = busy_end + rest
                    if retry is None or candidate > retry:
                        retry = candidate
        return retry


def find_slot(
    timeline: CourtTimeline,
    calendar: CoupleCalendar,
    couple_ids: Tuple[int, int],
    not_before: datetime,
    duration: timedelta,
    rest: timedelta,
) -> Optional[datetime]:
    """Earliest start on `timeline` that is free for the court and both couples."""
    t = not_before
    while True:
        start = timeline.earliest_fit(t, duration)
        if start is None:
            return None
        retry = calendar.first_clash(couple_ids, start, start + duration, rest)
        if retry is None:
            return start
        t = max(retry, start + timedelta(minutes=1))
