from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import update
from sqlalchemy.orm import Session

from batchguard.core.errors import InvalidBatchTargetError, SafeConflictError, SwitchNotFoundError
from batchguard.models import Batch, Role, User


logger = logging.getLogger(__name__)

NO_BATCH_LABEL = 'No Batch'
UNKNOWN_LABEL = 'Unknown'


def normalized_role(role: str | None) -> str:
    return str(role or '').strip().lower()


def is_admin(user: User | None) -> bool:
    return bool(user) and normalized_role(user.role) == Role.ADMIN.value


def get_user(db: Session, user_id: int, *, for_update: bool = False) -> User | None:
    query = db.query(User).filter(User.id == user_id)
    if for_update:
        query = query.with_for_update().populate_existing()
    return query.first()


def require_user(db: Session, user_id: int, *, for_update: bool = False) -> User:
    user = get_user(db, user_id, for_update=for_update)
    if not user:
        raise SwitchNotFoundError('User not found')
    return user


def find_user_by_external_id(db: Session, external_id: str) -> User | None:
    subject = str(external_id or '').strip()
    if not subject:
        return None
    return db.query(User).filter(User.external_id == subject).first()


def get_batch(db: Session, batch_id: int | None) -> Batch | None:
    if batch_id is None:
        return None
    return db.query(Batch).filter(Batch.id == batch_id).first()


def require_active_batch(db: Session, batch_id: int) -> Batch:
    batch = get_batch(db, batch_id)
    if not batch or not batch.is_active:
        raise InvalidBatchTargetError('Invalid or inactive batch')
    return batch


def list_batches(db: Session, *, active_only: bool = True) -> list[Batch]:
    query = db.query(Batch)
    if active_only:
        query = query.filter(Batch.is_active.is_(True))
    return query.order_by(Batch.name.asc(), Batch.id.asc()).all()


def batch_names_by_id(db: Session, batch_ids: Iterable[int | None]) -> dict[int, str]:
    wanted = {int(batch_id) for batch_id in batch_ids if batch_id is not None}
    if not wanted:
        return {}
    return {
        batch_id: name
        for batch_id, name in db.query(Batch.id, Batch.name).filter(Batch.id.in_(wanted)).all()
    }


def users_by_id(db: Session, user_ids: Iterable[int]) -> dict[int, User]:
    wanted = {int(user_id) for user_id in user_ids}
    if not wanted:
        return {}
    return {row.id: row for row in db.query(User).filter(User.id.in_(wanted)).all()}


def assign_batch_if_current(
    db: Session,
    *,
    user_id: int,
    expected_batch_id: int | None,
    new_batch_id: int,
) -> None:
    stmt = update(User).where(User.id == user_id)
    if expected_batch_id is None:
        stmt = stmt.where(User.current_batch_id.is_(None))
    else:
        stmt = stmt.where(User.current_batch_id == expected_batch_id)
    stmt = stmt.values(current_batch_id=new_batch_id).execution_options(synchronize_session=False)
    result = db.execute(stmt)
    if result.rowcount != 1:
        logger.warning(
            'batch_assignment_stale',
            extra={'user_id': int(user_id), 'expected_batch_id': expected_batch_id, 'new_batch_id': int(new_batch_id)},
        )
        raise SafeConflictError('Batch assignment changed concurrently. Please retry.')
