from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from batchguard.core.router_guard import require_admin
from batchguard.db import get_db
from batchguard.route_logging import EndpointNameRoute
from batchguard.schemas import SuspendUserRequest, UnsuspendUserRequest
from batchguard.services.anti_theft_service import get_switch_stats, get_users_with_multiple_switches
from batchguard.services.batch_membership_service import get_user
from batchguard.services.suspension_service import list_suspended_users, suspend_user, unsuspend_user
from batchguard.services.switch_history_service import get_all_switch_history, get_switch_history


router = APIRouter(prefix='/api/admin/batch-switches', tags=['Batch Switch Admin'], route_class=EndpointNameRoute)


@router.get('/history')
def switch_history_feed(
    limit: int | None = Query(default=None),
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return get_all_switch_history(db, limit)


@router.get('/suspicious')
def suspicious_users(
    min_switches: int | None = Query(default=None, ge=1),
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return get_users_with_multiple_switches(db, min_switches)


@router.get('/stats')
def switch_stats(
    min_switches: int | None = Query(default=None, ge=1),
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return get_switch_stats(db, min_switches)


@router.get('/users/{user_id}/history')
def user_switch_history(
    user_id: int,
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if not get_user(db, user_id):
        raise HTTPException(status_code=404, detail='User not found')
    return get_switch_history(db, user_id)


@router.get('/suspended')
def suspended_users(
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return list_suspended_users(db)


@router.post('/users/{user_id}/suspend')
def suspend(
    user_id: int,
    payload: SuspendUserRequest,
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        return suspend_user(db, user_id=user_id, admin_id=admin['user_id'], reason=payload.reason)
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc) or 'Forbidden') from exc
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post('/users/{user_id}/unsuspend')
def unsuspend(
    user_id: int,
    payload: UnsuspendUserRequest,
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        return unsuspend_user(db, user_id=user_id, admin_id=admin['user_id'], batch_id=payload.batch_id)
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc) or 'Forbidden') from exc
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
