import logging
from datetime import datetime, timedelta

from studytrackr.core.aggregation import TodayStats
from studytrackr.core.models import StreakData, StreakSettings
from studytrackr.core.study_day import study_day_label, study_days_between

logger = logging.getLogger(__name__)


def meets_requirements(stats: TodayStats, streak_settings: StreakSettings) -> bool:
    return (
        stats.total_hours >= streak_settings.min_study_hours
        and stats.total_questions >= streak_settings.min_questions
    )


def reset_streak() -> StreakData:
    return StreakData()


def evaluate_streak(
    stats: TodayStats,
    streak_settings: StreakSettings,
    streak_data: StreakData,
    now: datetime,
) -> StreakData:
    """Return the streak after crediting, holding or breaking it for ``now``.

    Calling it again within the same study day once today has been credited
    returns the input unchanged.
    """
    last_study_date = streak_data.last_study_date
    if last_study_date:
        try:
            gap = study_days_between(last_study_date, now)
        except ValueError:
            logger.warning("Ignoring unreadable last study date %r", last_study_date)
            last_study_date = None
        else:
            if gap > 1:
                return StreakData(
                    current_streak=0,
                    longest_streak=streak_data.longest_streak,
                    last_study_date=None,
                )

    today = study_day_label(now)
    if not meets_requirements(stats, streak_settings) or last_study_date == today:
        return streak_data

    yesterday = study_day_label(now - timedelta(days=1))
    if last_study_date == yesterday:
        current = streak_data.current_streak + 1
    else:
        current = 1

    return StreakData(
        current_streak=current,
        longest_streak=max(streak_data.longest_streak, current),
        last_study_date=today,
    )
