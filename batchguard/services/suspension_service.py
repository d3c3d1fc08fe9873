from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from batchguard.config import settings
from batchguard.core.errors import SwitchForbiddenError
from batchguard.core.time_provider import TimeProvider, default_time_provider
from batchguard.models import User
from batchguard.services.batch_membership_service import (
    NO_BATCH_LABEL,
    UNKNOWN_LABEL,
    batch_names_by_id,
    get_user,
    is_admin,
    require_active_batch,
    require_user,
    users_by_id,
)
from batchguard.services.observability_counters import record_observability_event


logger = logging.getLogger(__name__)


def _require_admin_actor(db: Session, admin_id: int, action: str) -> User:
    admin = get_user(db, admin_id)
    if not is_admin(admin):
        raise SwitchForbiddenError(f'Only admins can {action} users')
    return admin


def suspend_user(
    db: Session,
    *,
    user_id: int,
    admin_id: int,
    reason: str | None = None,
    time_provider: TimeProvider = default_time_provider,
) -> dict:
    _require_admin_actor(db, admin_id, 'suspend')
    user = require_user(db, user_id, for_update=True)
    if is_admin(user):
        raise SwitchForbiddenError('Cannot suspend admin users')

    user.is_suspended = True
    user.suspended_at = time_provider.naive_now()
    user.suspended_by = admin_id
    user.suspend_reason = (reason or '').strip() or settings.default_suspend_reason
    db.commit()

    record_observability_event('user_suspended')
    logger.info('user_suspended', extra={'user_id': int(user_id), 'admin_id': int(admin_id)})
    return {'success': True}


def unsuspend_user(db: Session, *, user_id: int, admin_id: int, batch_id: int) -> dict:
    """Lift a suspension and pin the user to an operator-chosen batch.

    The reassignment is an operator action, not a self-service switch, so no
    ledger entry is written. The user's batch is locked afterwards.
    """
    _require_admin_actor(db, admin_id, 'unsuspend')
    batch = require_active_batch(db, batch_id)
    user = require_user(db, user_id, for_update=True)

    user.is_suspended = False
    user.suspended_at = None
    user.suspended_by = None
    user.suspend_reason = None
    user.current_batch_id = batch.id
    user.batch_locked = True
    db.commit()

    record_observability_event('user_unsuspended')
    logger.info(
        'user_unsuspended',
        extra={'user_id': int(user_id), 'admin_id': int(admin_id), 'batch_id': int(batch.id)},
    )
    return {'success': True}


def list_suspended_users(db: Session) -> list[dict]:
    rows = (
        db.query(User)
        .filter(User.is_suspended.is_(True))
        .order_by(User.suspended_at.desc(), User.id.asc())
        .all()
    )
    batch_names = batch_names_by_id(db, [row.current_batch_id for row in rows])
    admins = users_by_id(db, [row.suspended_by for row in rows if row.suspended_by is not None])

    items = []
    for row in rows:
        suspended_by = admins.get(row.suspended_by) if row.suspended_by is not None else None
        items.append(
            {
                'user_id': row.id,
                'name': row.name,
                'email': row.email,
                'role': row.role,
                'batch_name': batch_names.get(row.current_batch_id, NO_BATCH_LABEL),
                'suspended_at': row.suspended_at,
                'suspend_reason': row.suspend_reason,
                'suspended_by_name': (suspended_by.name if suspended_by else '') or UNKNOWN_LABEL,
            }
        )
    return items
