"""Severity scoring for brute-force alerts.

This module maps a failure count to a severity band relative to the
alert threshold, and severities to numeric scores.
"""

from auth_sentry.schema import Severity


# Base scores for each severity level
BASE_SCORES: dict[Severity, int] = {
    Severity.LOW: 25,
    Severity.MEDIUM: 50,
    Severity.HIGH: 75,
}


def get_base_score(severity: Severity) -> int:
    """Get base score for a severity level.

    Args:
        severity: Severity band.

    Returns:
        Base score (0-100).
    """
    return BASE_SCORES.get(severity, 25)


def severity_for_count(
    count: int,
    threshold: int,
    medium_factor: int = 2,
    high_factor: int = 4,
) -> Severity:
    """Determine the severity band for a failure count.

    Bands are ``[threshold, threshold*medium_factor)`` → LOW,
    ``[threshold*medium_factor, threshold*high_factor)`` → MEDIUM and
    ``>= threshold*high_factor`` → HIGH. Counts below the threshold are
    the caller's concern and map to LOW.

    Args:
        count: Failures in the current window.
        threshold: Alert threshold.
        medium_factor: Multiplier of the threshold where MEDIUM starts.
        high_factor: Multiplier of the threshold where HIGH starts.

    Returns:
        Severity band.
    """
    if count >= threshold * high_factor:
        return Severity.HIGH
    elif count >= threshold * medium_factor:
        return Severity.MEDIUM
    else:
        return Severity.LOW


def calculate_alert_score(count: int, threshold: int, severity: Severity) -> int:
    """Calculate the numeric score of an alert.

    Starts from the severity base score and adds +5 for every full
    threshold's worth of failures beyond the first, at most +20.

    Args:
        count: Failures in the window.
        threshold: Alert threshold.
        severity: Severity band of the alert.

    Returns:
        Score capped at 100.
    """
    score = get_base_score(severity)

    extra = max(0, count - threshold) // threshold
    bonus = min(20, extra * 5)

    return min(100, score + bonus)
