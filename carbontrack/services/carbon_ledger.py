# carbontrack/services/carbon_ledger.py
"""Append-only store of per-user, per-day carbon entries."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from carbontrack import db
from carbontrack.models.carbon import ActivityCategory, CarbonEntry
from carbontrack.services.emission_service import convert, get_factor
from carbontrack.utils.errors import ValidationFailed

logger = logging.getLogger(__name__)


def today_utc() -> date:
    return datetime.utcnow().date()


def append(user_id: int, day: Optional[date], activities) -> List[CarbonEntry]:
    """Convert and persist one entry per non-zero activity for *day*.

    Every activity is validated before anything is written, so a bad key or
    quantity leaves the ledger untouched. Goal reconciliation runs only after
    the rows are committed.
    """
    if not isinstance(activities, Mapping):
        raise ValidationFailed("activities must be a mapping of activity type to quantity")
    day = day or today_utc()

    rows = []
    for activity_type, quantity in activities.items():
        co2_amount, category = convert(activity_type, quantity)
        if float(quantity) == 0:
            continue
        rows.append(CarbonEntry(
            user_id=user_id,
            category=category,
            activity_type=activity_type,
            quantity=float(quantity),
            factor=get_factor(activity_type).factor,
            co2_amount=co2_amount,
            date=day,
        ))

    if not rows:
        logger.debug("No non-zero activities for user %s on %s; nothing recorded", user_id, day)
        return []

    try:
        db.session.add_all(rows)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Failed to record %d carbon entries for user %s: %s", len(rows), user_id, exc)
        raise

    logger.info("Recorded %d carbon entries for user %s on %s", len(rows), user_id, day)
    from carbontrack.services.goal_reconciler import reconcile_user_goals  # avoid circular import
    reconcile_user_goals(user_id)
    return rows


def query(user_id: int, start: Optional[date] = None, end: Optional[date] = None) -> List[CarbonEntry]:
    """Entries with ``start <= date <= end``, newest first. Missing bounds are open."""
    q = CarbonEntry.query.filter(CarbonEntry.user_id == user_id)
    if start is not None:
        q = q.filter(CarbonEntry.date >= start)
    if end is not None:
        q = q.filter(CarbonEntry.date <= end)
    return q.order_by(CarbonEntry.date.desc(), CarbonEntry.id.desc()).all()


def aggregate_by_category(user_id: int, category, start: Optional[date] = None,
                          end: Optional[date] = None) -> float:
    """Sum of ``co2_amount`` for the user's entries in *category*; all-time when unranged."""
    q = db.session.query(func.coalesce(func.sum(CarbonEntry.co2_amount), 0.0)).filter(
        CarbonEntry.user_id == user_id,
        CarbonEntry.category == ActivityCategory(category),
    )
    if start is not None:
        q = q.filter(CarbonEntry.date >= start)
    if end is not None:
        q = q.filter(CarbonEntry.date <= end)
    return float(q.scalar())


def delete_for_day(user_id: int, day: date) -> int:
    """Delete every entry the user recorded for *day* and reconcile their goals."""
    try:
        deleted = CarbonEntry.query.filter(
            CarbonEntry.user_id == user_id,
            CarbonEntry.date == day,
        ).delete(synchronize_session=False)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Failed to delete carbon entries for user %s on %s: %s", user_id, day, exc)
        raise

    logger.info("Deleted %d carbon entries for user %s on %s", deleted, user_id, day)
    from carbontrack.services.goal_reconciler import reconcile_user_goals  # avoid circular import
    reconcile_user_goals(user_id, refresh_completed=True)
    return deleted


def summarize(user_id: int, days: int, today: Optional[date] = None) -> Dict:
    """Totals over the last *days* calendar days (today included)."""
    end = today or today_utc()
    start = end - timedelta(days=days - 1)

    rows = (
        db.session.query(CarbonEntry.category, func.sum(CarbonEntry.co2_amount))
        .filter(
            CarbonEntry.user_id == user_id,
            CarbonEntry.date >= start,
            CarbonEntry.date <= end,
        )
        .group_by(CarbonEntry.category)
        .all()
    )
    by_category = {category.value: round(total or 0.0, 2) for category, total in rows}
    return {
        'start': start.isoformat(),
        'end': end.isoformat(),
        'total': round(sum(total or 0.0 for _, total in rows), 2),
        'by_category': by_category,
    }
