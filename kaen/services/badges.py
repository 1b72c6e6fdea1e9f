"""Role badges shown beside comment authors."""

from __future__ import annotations

from kaen.core.config import settings
from kaen.models.enums import UserBadge


def badges_for(
    author_id: str,
    community_owner_id: str | None = None,
    post_author_id: str | None = None,
) -> list[UserBadge]:
    """Return the badges *author_id* earns in this discussion, in display order."""
    badges: list[UserBadge] = []
    if settings.SITE_FOUNDER_ID and author_id == settings.SITE_FOUNDER_ID:
        badges.append(UserBadge.founder)
    if community_owner_id and author_id == community_owner_id:
        badges.append(UserBadge.admin)
    if post_author_id and author_id == post_author_id:
        badges.append(UserBadge.author)
    return badges
