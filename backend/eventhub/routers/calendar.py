# eventhub/routers/calendar.py
from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from eventhub.core.security import get_current_user, get_optional_user
from eventhub.db.session import get_db
from eventhub.models.user import User
from eventhub.observability.metrics import FEED_REQUESTS
from eventhub.schemas.calendar import FeedLinks, PreferenceIn, PreferenceOut
from eventhub.schemas.common import ok, fail, meta_now
from eventhub.services.feed import compose, feed_links, resolve_selection
from eventhub.services.preferences import get_preference, save_preference

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/calendar", tags=["calendar"])

ICS_MEDIA_TYPE = "text/calendar; charset=utf-8"
ICS_FILENAME = "events.ics"

_SOURCES_Q = Query(None, description="Comma separated source ids")
_USER_Q = Query(None, description="User id whose saved selection applies")
_INTERNAL_Q = Query(None, description='"false" leaves out events authored on the hub')


# The https:// and webcal:// subscription URLs both land here.
@router.api_route("/feed", methods=["GET", "HEAD"])
@router.api_route("/feed.ics", methods=["GET", "HEAD"])
def calendar_feed(
    sources: Optional[str] = _SOURCES_Q,
    user: Optional[str] = _USER_Q,
    internal: Optional[str] = _INTERNAL_Q,
    db: Session = Depends(get_db),
):
    try:
        selection = resolve_selection(db, sources=sources, user=user, internal=internal)
        body = compose(db, selection)
    except SQLAlchemyError as exc:
        FEED_REQUESTS.labels(outcome="error").inc()
        logger.error("feed.store_unavailable", error=str(exc))
        return fail(
            code="FEED_UNAVAILABLE",
            message="Calendar feed is temporarily unavailable",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    FEED_REQUESTS.labels(outcome="ok").inc()
    return Response(
        content=body,
        media_type=ICS_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{ICS_FILENAME}"'},
    )


@router.get("/links")
def calendar_links(
    request: Request,
    sources: Optional[str] = _SOURCES_Q,
    user: Optional[str] = _USER_Q,
    internal: Optional[str] = _INTERNAL_Q,
    db: Session = Depends(get_db),
    current: Optional[User] = Depends(get_optional_user),
):
    """Subscription URLs for a selection; a signed-in caller without filters gets a link to their saved one."""
    if user is None and sources is None and current is not None:
        user = str(current.id)
    selection = resolve_selection(db, sources=sources, user=user, internal=internal)
    links = FeedLinks(**feed_links(str(request.base_url), selection))
    return ok(data=links.model_dump(), meta=meta_now(sources=sources, user=user, internal=internal))


@router.get("/preferences")
def read_preferences(db: Session = Depends(get_db), current: User = Depends(get_current_user)):
    pref = get_preference(db, current.id)
    if pref is None:
        data = PreferenceOut(user_id=current.id, include_all_sources=True, selected_sources=[])
    else:
        data = PreferenceOut.model_validate(pref)
    return ok(data=data.model_dump(mode="json"), meta=meta_now())


@router.put("/preferences")
def write_preferences(
    body: PreferenceIn,
    db: Session = Depends(get_db),
    current: User = Depends(get_current_user),
):
    pref = save_preference(
        db,
        current.id,
        include_all_sources=body.include_all_sources,
        selected_sources=body.selected_sources,
    )
    return ok(data=PreferenceOut.model_validate(pref).model_dump(mode="json"), meta=meta_now())
