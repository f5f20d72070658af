"""Per-day blackout lookup.

Merges absolute-date and annually recurring blackout rules, clinic-wide and
per-practitioner, into a map answering "is this day blocked, and why".
"""

from datetime import date, timedelta
from typing import Iterable

from app.availability.errors import InvalidInputError
from app.availability.models import NOT_BLOCKED, BlackoutRule, BlackoutScope, BlockInfo
from app.utils.time import month_bounds


def occurs_on_annual_range(day: date, start: date, end: date) -> bool:
    """Check whether ``day``'s month-day falls in [start, end], ignoring years.

    A start later in the year than the end wraps around year-end, e.g.
    Dec 24 .. Jan 2.
    """
    md = (day.month, day.day)
    ms = (start.month, start.day)
    me = (end.month, end.day)
    if ms <= me:
        return ms <= md <= me
    return md >= ms or md <= me


def rule_covers(rule: BlackoutRule, day: date) -> bool:
    """Check whether a single rule blocks ``day``."""
    if rule.annual_recurrence:
        return occurs_on_annual_range(day, rule.start_date, rule.end_date)
    return rule.start_date <= day <= rule.end_date


class BlackoutIndex:
    """Blocked-day lookup for one practitioner (or the clinic) over a window.

    Practitioner rules are applied before global ones, so when both cover a
    day the practitioner's reason is shown. A reason, once set for a day, is
    never overwritten; a later rule only fills it in when it is still empty.
    Rules scoped to other practitioners are ignored.
    """

    def __init__(
        self,
        rules: Iterable[BlackoutRule],
        window_start: date,
        window_end: date,
        practitioner_id: str | None = None,
    ) -> None:
        if window_end < window_start:
            raise InvalidInputError("blackout window ends before it starts", field="window_end")

        self.window_start = window_start
        self.window_end = window_end
        self.practitioner_id = practitioner_id
        self.rules = self._applicable(rules)
        self._days: dict[date, BlockInfo] = {}
        for rule in self.rules:
            self._expand(rule)

    @classmethod
    def for_month(
        cls,
        rules: Iterable[BlackoutRule],
        year: int,
        month: int,
        practitioner_id: str | None = None,
    ) -> "BlackoutIndex":
        """Build an index covering one calendar month."""
        first, last = month_bounds(year, month)
        return cls(rules, first, last, practitioner_id=practitioner_id)

    def _applicable(self, rules: Iterable[BlackoutRule]) -> list[BlackoutRule]:
        practitioner_rules = []
        global_rules = []
        for rule in rules:
            if rule.scope == BlackoutScope.GLOBAL:
                global_rules.append(rule)
            elif self.practitioner_id is not None and rule.practitioner_id == self.practitioner_id:
                practitioner_rules.append(rule)
        return practitioner_rules + global_rules

    def _candidate_days(self, rule: BlackoutRule) -> Iterable[date]:
        if rule.annual_recurrence:
            first, last = self.window_start, self.window_end
        else:
            first = max(rule.start_date, self.window_start)
            last = min(rule.end_date, self.window_end)
        day = first
        while day <= last:
            yield day
            day += timedelta(days=1)

    def _expand(self, rule: BlackoutRule) -> None:
        for day in self._candidate_days(rule):
            if rule.annual_recurrence and not occurs_on_annual_range(
                day, rule.start_date, rule.end_date
            ):
                continue
            self._days[day] = _merge(self._days.get(day), rule)

    def is_blocked(self, day: date) -> BlockInfo:
        """Blocked flag, reason and scope for ``day``.

        Days outside the indexed window are evaluated directly against the
        rules without being cached.
        """
        if self.window_start <= day <= self.window_end:
            return self._days.get(day, NOT_BLOCKED)

        info: BlockInfo | None = None
        for rule in self.rules:
            if rule_covers(rule, day):
                info = _merge(info, rule)
        return info or NOT_BLOCKED

    def blocked_days(self) -> dict[date, BlockInfo]:
        """All blocked days inside the window, in date order."""
        return dict(sorted(self._days.items()))

    def __contains__(self, day: date) -> bool:
        return self.is_blocked(day).blocked


def _merge(existing: BlockInfo | None, rule: BlackoutRule) -> BlockInfo:
    if existing is None:
        return BlockInfo(blocked=True, reason=rule.reason or None, scope=rule.scope)
    if existing.reason is None and rule.reason:
        return BlockInfo(blocked=True, reason=rule.reason, scope=existing.scope)
    return existing
