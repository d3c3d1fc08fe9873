from __future__ import annotations

from typing import Iterable

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from batchguard.config import settings
from batchguard.db import get_db
from batchguard.models import Role
from batchguard.services.batch_membership_service import find_user_by_external_id, normalized_role


def _resolve_subject(request: Request) -> str | None:
    # The identity provider has already verified the caller and forwards its subject.
    subject = (request.headers.get(settings.identity_header) or '').strip()
    return subject or None


def require_auth_user(request: Request, db: Session = Depends(get_db)) -> dict:
    subject = _resolve_subject(request)
    if not subject:
        raise HTTPException(status_code=401, detail='Unauthorized')
    user = find_user_by_external_id(db, subject)
    if not user:
        raise HTTPException(status_code=401, detail='Unauthorized')
    return {
        'user_id': int(user.id),
        'role': normalized_role(user.role),
        'name': user.name,
    }


def require_role(user: dict, allowed_roles: set[str] | Iterable[str]) -> None:
    normalized = {normalized_role(role) for role in allowed_roles}
    if normalized_role(user.get('role')) not in normalized:
        raise HTTPException(status_code=403, detail='Forbidden')


def require_admin(user: dict = Depends(require_auth_user)) -> dict:
    require_role(user, {Role.ADMIN.value})
    return user
