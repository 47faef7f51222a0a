"""
Forgetting curves and spaced repetition scheduling
"""
from .forgetting_curve import ForgettingCurve
from .review_scheduler import ReviewScheduler

__all__ = ["ForgettingCurve", "ReviewScheduler"]
