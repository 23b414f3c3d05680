"""Weekly KST season window."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS
WEEK_MS = 7 * DAY_MS

KST_OFFSET_MS = 9 * HOUR_MS
KST_RESET_HOUR = 9
SEASON_TIMEZONE = "Asia/Seoul"
SEASON_RESET_RULE = "weekly Monday 09:00 KST"

_EPOCH = date(1970, 1, 1)
# 1970-01-01 was a Thursday.
_EPOCH_WEEKDAY = 3


@dataclass
class Season:
    id: str
    startAt: int
    endAt: int
    timezone: str = SEASON_TIMEZONE
    resetRule: str = SEASON_RESET_RULE


def compute_season_window(now_ms: int) -> Season:
    """Season containing `now_ms`; weeks start Monday 09:00 UTC+9.

    Pure. Call it fresh whenever the current season has to be checked.
    """
    kst_now_ms = int(now_ms) + KST_OFFSET_MS
    kst_day = kst_now_ms // DAY_MS
    start_of_today_kst_ms = kst_day * DAY_MS

    days_since_monday = (kst_day + _EPOCH_WEEKDAY) % 7
    start_kst_ms = start_of_today_kst_ms - days_since_monday * DAY_MS + KST_RESET_HOUR * HOUR_MS

    if kst_now_ms < start_kst_ms:
        start_kst_ms -= WEEK_MS

    end_kst_ms = start_kst_ms + WEEK_MS
    start_date = _EPOCH + timedelta(days=start_kst_ms // DAY_MS)

    return Season(
        id=f"kst-week-{start_date.isoformat()}",
        startAt=start_kst_ms - KST_OFFSET_MS,
        endAt=end_kst_ms - KST_OFFSET_MS,
    )
