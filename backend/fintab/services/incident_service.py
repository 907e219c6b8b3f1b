# Overview: Rolling per-business log of unexpected failures for postmortems.

from __future__ import annotations

import logging
import traceback

from flask import current_app

from ..extensions import db
from ..models import Incident
from fintab.time_utils import utcnow

logger = logging.getLogger(__name__)


def record_incident(
    exc: BaseException,
    *,
    business_id: int | None = None,
    user_id: int | None = None,
    path: str | None = None,
    context: dict | None = None,
) -> Incident:
    """
    Persist one incident and prune the business's log to INCIDENT_LOG_LIMIT.

    Runs in a fresh transaction: the caller's failed work is rolled back first.
    """
    db.session.rollback()
    limit = current_app.config.get("INCIDENT_LOG_LIMIT", 10)

    incident = Incident(
        business_id=business_id,
        user_id=user_id,
        error_type=exc.__class__.__name__,
        message=str(exc) or exc.__class__.__name__,
        stack="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        path=path,
        context=context,
        occurred_at=utcnow(),
    )
    db.session.add(incident)
    db.session.flush()

    stale = (
        db.session.query(Incident.id)
        .filter(Incident.business_id == business_id)
        .order_by(Incident.id.desc())
        .offset(limit)
        .all()
    )
    if stale:
        db.session.query(Incident).filter(Incident.id.in_([row[0] for row in stale])).delete(synchronize_session=False)

    db.session.commit()
    logger.error("incident recorded id=%s type=%s path=%s", incident.id, incident.error_type, path)
    return incident


def list_incidents(business_id: int | None) -> list[Incident]:
    return (
        db.session.query(Incident)
        .filter(Incident.business_id == business_id)
        .order_by(Incident.id.desc())
        .all()
    )
