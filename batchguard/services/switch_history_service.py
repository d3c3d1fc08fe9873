from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from batchguard.config import settings
from batchguard.models import BatchSwitchHistory
from batchguard.services.batch_membership_service import (
    NO_BATCH_LABEL,
    UNKNOWN_LABEL,
    batch_names_by_id,
    users_by_id,
)


def _next_switched_at(db: Session, user_id: int, now: datetime) -> datetime:
    # Entries for one user must never share a timestamp; bump past the latest one.
    latest = (
        db.query(func.max(BatchSwitchHistory.switched_at))
        .filter(BatchSwitchHistory.user_id == user_id)
        .scalar()
    )
    if latest is not None and now <= latest:
        return latest + timedelta(microseconds=1)
    return now


def append_switch_entry(
    db: Session,
    *,
    user_id: int,
    from_batch_id: int | None,
    to_batch_id: int,
    now: datetime,
) -> BatchSwitchHistory:
    entry = BatchSwitchHistory(
        user_id=user_id,
        from_batch_id=from_batch_id,
        to_batch_id=to_batch_id,
        switched_at=_next_switched_at(db, user_id, now),
    )
    db.add(entry)
    db.flush()
    return entry


def _serialize_entry(entry: BatchSwitchHistory, batch_names: dict[int, str]) -> dict:
    from_batch_name = NO_BATCH_LABEL
    if entry.from_batch_id is not None:
        from_batch_name = batch_names.get(entry.from_batch_id, UNKNOWN_LABEL)
    return {
        'id': entry.id,
        'user_id': entry.user_id,
        'from_batch_id': entry.from_batch_id,
        'to_batch_id': entry.to_batch_id,
        'switched_at': entry.switched_at,
        'from_batch_name': from_batch_name,
        'to_batch_name': batch_names.get(entry.to_batch_id, UNKNOWN_LABEL),
    }


def get_switch_history(db: Session, user_id: int) -> list[dict]:
    rows = (
        db.query(BatchSwitchHistory)
        .filter(BatchSwitchHistory.user_id == user_id)
        .order_by(BatchSwitchHistory.switched_at.desc(), BatchSwitchHistory.id.desc())
        .all()
    )
    batch_names = batch_names_by_id(db, [id_ for row in rows for id_ in (row.from_batch_id, row.to_batch_id)])
    return [_serialize_entry(row, batch_names) for row in rows]


def resolve_history_limit(limit: int | None) -> int:
    value = int(limit or 0)
    if value <= 0:
        value = settings.switch_history_default_limit
    return min(value, settings.switch_history_max_limit)


def get_all_switch_history(db: Session, limit: int | None = None) -> list[dict]:
    rows = (
        db.query(BatchSwitchHistory)
        .order_by(BatchSwitchHistory.switched_at.desc(), BatchSwitchHistory.id.desc())
        .limit(resolve_history_limit(limit))
        .all()
    )
    batch_names = batch_names_by_id(db, [id_ for row in rows for id_ in (row.from_batch_id, row.to_batch_id)])
    users = users_by_id(db, [row.user_id for row in rows])

    feed = []
    for row in rows:
        item = _serialize_entry(row, batch_names)
        user = users.get(row.user_id)
        item['user_name'] = (user.name if user else '') or UNKNOWN_LABEL
        item['user_email'] = (user.email if user else '') or UNKNOWN_LABEL
        feed.append(item)
    return feed


def get_user_switch_count(db: Session, user_id: int) -> int:
    return int(
        db.query(func.count(BatchSwitchHistory.id))
        .filter(BatchSwitchHistory.user_id == user_id)
        .scalar()
        or 0
    )


def count_all_switches(db: Session) -> int:
    return int(db.query(func.count(BatchSwitchHistory.id)).scalar() or 0)
