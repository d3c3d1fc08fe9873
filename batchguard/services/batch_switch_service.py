from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from batchguard.config import settings
from batchguard.core.errors import SafeConflictError, SwitchForbiddenError
from batchguard.core.time_provider import TimeProvider, default_time_provider
from batchguard.models import User
from batchguard.services.batch_membership_service import (
    assign_batch_if_current,
    get_batch,
    require_active_batch,
    require_user,
)
from batchguard.services.observability_counters import record_observability_event
from batchguard.services.switch_history_service import append_switch_entry, get_user_switch_count


logger = logging.getLogger(__name__)

ALREADY_IN_BATCH_MESSAGE = 'Already in this batch'
SWITCHED_MESSAGE = 'Batch switched successfully'


def _check_switch_allowed(user: User) -> None:
    if user.is_suspended:
        record_observability_event('batch_switch_blocked')
        logger.warning('batch_switch_blocked', extra={'user_id': int(user.id), 'reason': 'suspended'})
        raise SwitchForbiddenError('Your account is suspended and cannot switch batches')
    if user.batch_locked:
        record_observability_event('batch_switch_blocked')
        logger.warning('batch_switch_blocked', extra={'user_id': int(user.id), 'reason': 'locked'})
        raise SwitchForbiddenError('Batch switching is locked for your account')


def _switch_batch_once(db: Session, user_id: int, new_batch_id: int, time_provider: TimeProvider) -> dict:
    try:
        user = require_user(db, user_id, for_update=True)
        _check_switch_allowed(user)
        target = require_active_batch(db, new_batch_id)

        current_batch_id = user.current_batch_id
        if current_batch_id == target.id:
            db.rollback()
            record_observability_event('batch_switch_noop')
            return {'success': True, 'switched': False, 'message': ALREADY_IN_BATCH_MESSAGE}

        entry = append_switch_entry(
            db,
            user_id=user.id,
            from_batch_id=current_batch_id,
            to_batch_id=target.id,
            now=time_provider.naive_now(),
        )
        entry_id = int(entry.id)
        assign_batch_if_current(
            db,
            user_id=user.id,
            expected_batch_id=current_batch_id,
            new_batch_id=target.id,
        )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise SafeConflictError('Batch switch collided with another request. Please retry.') from exc
    except Exception:
        db.rollback()
        raise

    record_observability_event('batch_switch')
    logger.info(
        'batch_switch_applied',
        extra={
            'user_id': int(user_id),
            'from_batch_id': current_batch_id,
            'to_batch_id': int(new_batch_id),
            'entry_id': entry_id,
        },
    )
    return {'success': True, 'switched': True, 'message': SWITCHED_MESSAGE}


def switch_batch(
    db: Session,
    user_id: int,
    new_batch_id: int,
    *,
    time_provider: TimeProvider = default_time_provider,
    max_retries: int | None = None,
) -> dict:
    retries = settings.switch_conflict_retries if max_retries is None else max(0, int(max_retries))
    attempt = 0
    while True:
        try:
            return _switch_batch_once(db, user_id, new_batch_id, time_provider)
        except SafeConflictError:
            if attempt >= retries:
                record_observability_event('batch_switch_conflict')
                logger.warning(
                    'batch_switch_conflict',
                    extra={'user_id': int(user_id), 'to_batch_id': int(new_batch_id), 'attempts': attempt + 1},
                )
                raise
            attempt += 1
            logger.info('batch_switch_retry', extra={'user_id': int(user_id), 'attempt': attempt})


def get_switch_status(db: Session, user_id: int) -> dict:
    user = require_user(db, user_id)
    batch = get_batch(db, user.current_batch_id)
    return {
        'user_id': user.id,
        'current_batch_id': user.current_batch_id,
        'current_batch_name': batch.name if batch else None,
        'is_suspended': bool(user.is_suspended),
        'suspend_reason': user.suspend_reason,
        'batch_locked': bool(user.batch_locked),
        'switch_count': get_user_switch_count(db, user.id),
        'can_switch': not user.is_suspended and not user.batch_locked,
    }
