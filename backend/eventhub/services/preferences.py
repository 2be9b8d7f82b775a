from __future__ import annotations

from typing import Iterable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from eventhub.models.calendar_preference import UserCalendarPreference

logger = structlog.get_logger(__name__)


def get_preference(db: Session, user_id: int) -> Optional[UserCalendarPreference]:
    return db.execute(
        select(UserCalendarPreference).where(UserCalendarPreference.user_id == user_id)
    ).scalar_one_or_none()


def save_preference(
    db: Session,
    user_id: int,
    *,
    include_all_sources: bool,
    selected_sources: Iterable[int],
) -> UserCalendarPreference:
    """Upsert the saved feed selection of one user."""
    selected = sorted({int(s) for s in selected_sources})
    pref = get_preference(db, user_id)
    if pref is None:
        pref = UserCalendarPreference(user_id=user_id)
        db.add(pref)
    pref.include_all_sources = include_all_sources
    pref.selected_sources = selected
    db.commit()
    db.refresh(pref)
    logger.info(
        "preferences.saved",
        user_id=user_id,
        include_all_sources=include_all_sources,
        selected=len(selected),
    )
    return pref
