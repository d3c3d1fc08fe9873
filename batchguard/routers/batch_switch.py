from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from batchguard.core.errors import SafeConflictError
from batchguard.core.router_guard import require_auth_user, require_role
from batchguard.db import get_db
from batchguard.models import Role
from batchguard.route_logging import EndpointNameRoute
from batchguard.schemas import BatchSwitchRequest
from batchguard.services.batch_membership_service import list_batches
from batchguard.services.batch_switch_service import get_switch_status, switch_batch
from batchguard.services.switch_history_service import get_switch_history, get_user_switch_count


router = APIRouter(prefix='/api/batch-switch', tags=['Batch Switch'], route_class=EndpointNameRoute)


def _require_student(user: dict = Depends(require_auth_user)) -> dict:
    require_role(user, {Role.STUDENT.value})
    return user


@router.get('/batches')
def available_batches(
    user: dict = Depends(_require_student),
    db: Session = Depends(get_db),
):
    return [
        {'id': row.id, 'name': row.name, 'description': row.description}
        for row in list_batches(db, active_only=True)
    ]


@router.get('/me')
def my_switch_status(
    user: dict = Depends(_require_student),
    db: Session = Depends(get_db),
):
    try:
        return get_switch_status(db, user['user_id'])
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post('')
def request_batch_switch(
    payload: BatchSwitchRequest,
    user: dict = Depends(_require_student),
    db: Session = Depends(get_db),
):
    try:
        return switch_batch(db, user['user_id'], payload.batch_id)
    except SafeConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc) or 'Forbidden') from exc
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get('/me/history')
def my_switch_history(
    user: dict = Depends(_require_student),
    db: Session = Depends(get_db),
):
    return get_switch_history(db, user['user_id'])


@router.get('/me/count')
def my_switch_count(
    user: dict = Depends(_require_student),
    db: Session = Depends(get_db),
):
    return {'count': get_user_switch_count(db, user['user_id'])}
