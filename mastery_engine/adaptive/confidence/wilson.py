"""
Wilson score confidence interval for a skill's mastery estimate
"""
from typing import Tuple
import math

from mastery_engine.schemas.mastery import ConfidenceInterval, SkillState

Z_95 = 1.96


def wilson_interval(p: float, n: int, z: float = Z_95) -> Tuple[float, float]:
    """
    Wilson score interval

    Args:
        p: Point estimate
        n: Number of observations
        z: Normal quantile (1.96 for 95%)

    Returns:
        (lower, upper), clipped to [0, 1]; (0, 1) when n == 0
    """
    if n <= 0:
        return 0.0, 1.0

    z2 = z * z
    denominator = 1 + z2 / n
    centre = (p + z2 / (2 * n)) / denominator
    margin = z * math.sqrt(p * (1 - p) / n + z2 / (4 * n * n)) / denominator
    return max(0.0, centre - margin), min(1.0, centre + margin)


def update_confidence_interval(skill: SkillState, z: float = Z_95) -> ConfidenceInterval:
    """Recompute a skill's interval from its attempts and current mastery"""
    lower, upper = wilson_interval(skill.p_mastery, skill.total_attempts, z)
    skill.confidence_interval = ConfidenceInterval(lower=lower, upper=upper)
    skill.sample_size = skill.total_attempts
    return skill.confidence_interval
