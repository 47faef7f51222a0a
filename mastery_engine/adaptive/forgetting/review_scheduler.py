"""
Spaced repetition review scheduling (SM-2 variant)

Interval sequence on consecutive correct reviews: 1 day, 3 days, then
round(previous interval * easiness factor), capped at the model's maximum
interval. A failed review resets the repetition count and interval and
lowers the easiness factor by 0.2 (never below 1.3).
"""
from datetime import datetime, timedelta
from typing import List
import logging

from mastery_engine.schemas.mastery import ForgettingModel, ReviewScheduleEntry, ReviewResult

logger = logging.getLogger(__name__)


class ReviewScheduler:
    """
    Maintains one review schedule entry per skill
    """

    INITIAL_EASINESS = 2.5
    MIN_EASINESS = 1.3
    EASINESS_PENALTY = 0.2
    FIRST_INTERVAL_DAYS = 1
    SECOND_INTERVAL_DAYS = 3
    EASY_AFTER_REPETITIONS = 3

    def update(self, model: ForgettingModel, skill_id: str, correct: bool, now: datetime) -> ReviewScheduleEntry:
        """
        Record a review outcome and schedule the next review

        Args:
            model: Forgetting model holding the schedule
            skill_id: Reviewed skill
            correct: Review outcome
            now: Review time

        Returns:
            Updated schedule entry
        """
        entry = model.review_schedule.get(skill_id)
        if entry is None:
            entry = ReviewScheduleEntry(
                skill_id=skill_id,
                next_review_date=now + timedelta(days=self.FIRST_INTERVAL_DAYS),
                interval_days=self.FIRST_INTERVAL_DAYS,
                easiness_factor=self.INITIAL_EASINESS,
                repetition_count=0,
            )
            model.review_schedule[skill_id] = entry

        if correct:
            entry.repetition_count += 1
            if entry.repetition_count > self.EASY_AFTER_REPETITIONS:
                entry.last_review_result = ReviewResult.EASY
            else:
                entry.last_review_result = ReviewResult.CORRECT

            if entry.repetition_count == 1:
                entry.interval_days = self.FIRST_INTERVAL_DAYS
            elif entry.repetition_count == 2:
                entry.interval_days = self.SECOND_INTERVAL_DAYS
            else:
                entry.interval_days = round(entry.interval_days * entry.easiness_factor)

            entry.interval_days = min(entry.interval_days, model.parameters.max_interval)
        else:
            entry.repetition_count = 0
            entry.interval_days = self.FIRST_INTERVAL_DAYS
            entry.last_review_result = ReviewResult.FORGOT
            entry.easiness_factor = max(self.MIN_EASINESS, entry.easiness_factor - self.EASINESS_PENALTY)

        entry.next_review_date = now + timedelta(days=entry.interval_days)
        return entry

    @staticmethod
    def due(model: ForgettingModel, now: datetime) -> List[ReviewScheduleEntry]:
        """Entries due at or before now, earliest first"""
        due = [e for e in model.review_schedule.values() if e.next_review_date <= now]
        return sorted(due, key=lambda e: (e.next_review_date, e.skill_id))
