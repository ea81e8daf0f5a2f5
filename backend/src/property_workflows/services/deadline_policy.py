"""Deadline policy — notice periods, due dates and days-remaining math.

Everything here is pure: the reference time is always passed in.
"""

from datetime import date, datetime, timedelta
from typing import Mapping, Optional, Union

from property_workflows.app.config import DEFAULT_NOTICE_PERIODS, Settings
from property_workflows.domain.enums import NoticeReason
from property_workflows.services.clock import ensure_utc

Deadline = Union[date, datetime]


class UnknownNoticeReason(ValueError):
    """Raised when a notice reason is not in the policy table."""

    def __init__(self, reason):
        self.reason = reason
        super().__init__(f"Unknown notice reason: {reason!r}")


def _as_date(value: Deadline) -> date:
    if isinstance(value, datetime):
        return ensure_utc(value).date()
    return value


def days_until(target: Deadline, now: Deadline) -> int:
    """Signed calendar days from ``now`` to ``target``.

    0 means due today, negative means already past.
    """
    return (_as_date(target) - _as_date(now)).days


def days_remaining(target: Deadline, now: Deadline) -> int:
    """Days left for display; never negative."""
    return max(0, days_until(target, now))


def is_overdue(due: Deadline, now: Deadline) -> bool:
    """True once ``now`` is strictly past ``due``.

    A plain date is due for the whole of that day.
    """
    if isinstance(due, datetime) and isinstance(now, datetime):
        return ensure_utc(now) > ensure_utc(due)
    return _as_date(now) > _as_date(due)


class DeadlinePolicy:
    """Notice-period table plus marketplace policy switches.

    The table is configuration, not code: build it from Settings so
    operators can tune notice periods per jurisdiction.
    """

    def __init__(
        self,
        notice_periods: Optional[Mapping[str, int]] = None,
        enforce_bid_cap: bool = False,
    ):
        table = dict(DEFAULT_NOTICE_PERIODS if notice_periods is None else notice_periods)
        self.notice_periods = self._validate_table(table)
        self.enforce_bid_cap = enforce_bid_cap

    @classmethod
    def from_settings(cls, settings: Settings) -> "DeadlinePolicy":
        return cls(settings.notice_periods, settings.enforce_bid_cap)

    @staticmethod
    def _validate_table(table: Mapping[str, int]) -> dict[NoticeReason, int]:
        validated: dict[NoticeReason, int] = {}
        for key, days in table.items():
            try:
                reason = NoticeReason(key)
            except ValueError:
                raise ValueError(f"Notice policy has unknown reason {key!r}") from None
            if isinstance(days, bool) or not isinstance(days, int) or days < 0:
                raise ValueError(
                    f"Notice policy for {reason.value} must be a non-negative integer, got {days!r}"
                )
            validated[reason] = days

        missing = [r.value for r in NoticeReason if r not in validated]
        if missing:
            raise ValueError(f"Notice policy is missing reasons: {', '.join(missing)}")
        return validated

    def parse_reason(self, reason) -> NoticeReason:
        """Coerce a raw reason value, raising UnknownNoticeReason on a miss."""
        if isinstance(reason, NoticeReason):
            return reason
        try:
            return NoticeReason(reason)
        except ValueError:
            raise UnknownNoticeReason(reason) from None

    def notice_period_days(self, reason) -> int:
        parsed = self.parse_reason(reason)
        try:
            return self.notice_periods[parsed]
        except KeyError:
            raise UnknownNoticeReason(reason) from None

    def notice_expires_at(self, reason, issued_at: datetime) -> datetime:
        return issued_at + timedelta(days=self.notice_period_days(reason))
