"""Ranking score for content items.

    final_score = base * type_coefficient + freshness + engagement

Unset metric fields count as zero; ratios are only taken over a non-zero
denominator.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from storage.models import Content, ContentType, as_utc

_TYPE_COEFFICIENT = {
    ContentType.VIDEO: 1.5,
    ContentType.ARTICLE: 1.0,
}

# (max age in days, bonus), checked in order; bounds are inclusive
_FRESHNESS_TIERS = ((7, 5.0), (30, 3.0), (90, 1.0))


def base_score(content: Content) -> float:
    if content.is_video:
        return (content.views or 0) / 1000 + (content.likes or 0) / 100
    return (content.reading_time or 0) + (content.reactions or 0) / 50


def type_coefficient(content_type: ContentType) -> float:
    return _TYPE_COEFFICIENT.get(content_type, 1.0)


def freshness_score(published_at: datetime, reference_time: datetime) -> float:
    age_days = (as_utc(reference_time) - as_utc(published_at)).total_seconds() / 86400
    for max_days, bonus in _FRESHNESS_TIERS:
        if age_days <= max_days:
            return bonus
    return 0.0


def engagement_score(content: Content) -> float:
    if content.is_video:
        views = content.views or 0
        return (content.likes or 0) / views * 10 if views > 0 else 0.0
    reading_time = content.reading_time or 0
    return (content.reactions or 0) / reading_time * 5 if reading_time > 0 else 0.0


def score(content: Content, reference_time: Optional[datetime] = None) -> float:
    """Final ranking score of *content* as of *reference_time* (default: now)."""
    if reference_time is None:
        reference_time = datetime.now(timezone.utc)
    return (
        base_score(content) * type_coefficient(content.content_type)
        + freshness_score(content.published_at, reference_time)
        + engagement_score(content)
    )
