from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.orm import Session

from batchguard.config import settings
from batchguard.models import BatchSwitchHistory, Role, User
from batchguard.services.batch_membership_service import (
    NO_BATCH_LABEL,
    UNKNOWN_LABEL,
    batch_names_by_id,
    is_admin,
    normalized_role,
    users_by_id,
)
from batchguard.services.observability_counters import count_observability_events
from batchguard.services.switch_history_service import count_all_switches


def resolve_min_switches(min_switches: int | None) -> int:
    return max(1, int(min_switches or settings.suspicious_min_switches))


def switch_counts_by_user(db: Session, *, min_switches: int = 1) -> dict[int, int]:
    count_col = func.count(BatchSwitchHistory.id)
    rows = (
        db.query(BatchSwitchHistory.user_id, count_col)
        .group_by(BatchSwitchHistory.user_id)
        .having(count_col >= min_switches)
        .all()
    )
    return {int(user_id): int(count) for user_id, count in rows}


def get_users_with_multiple_switches(db: Session, min_switches: int | None = None) -> list[dict]:
    """Flag accounts whose lifetime switch count reaches the threshold.

    Counts come from the full ledger, so suspended or reassigned users stay
    listed with their current suspension state. Admin accounts are never
    reported. Ordered by switch count descending, then user id ascending.
    """
    counts = switch_counts_by_user(db, min_switches=resolve_min_switches(min_switches))
    users = users_by_id(db, counts.keys())
    batch_names = batch_names_by_id(db, [user.current_batch_id for user in users.values()])

    flagged = []
    for user_id, switch_count in counts.items():
        user = users.get(user_id)
        if is_admin(user):
            continue
        role = normalized_role(user.role if user else None) or Role.STUDENT.value
        batch_name = NO_BATCH_LABEL
        if user and user.current_batch_id is not None:
            batch_name = batch_names.get(user.current_batch_id, NO_BATCH_LABEL)
        flagged.append(
            {
                'user_id': user_id,
                'name': (user.name if user else '') or UNKNOWN_LABEL,
                'email': (user.email if user else '') or UNKNOWN_LABEL,
                'role': role,
                'batch_name': batch_name,
                'switch_count': switch_count,
                'is_suspended': bool(user.is_suspended) if user else False,
            }
        )
    flagged.sort(key=lambda item: (-item['switch_count'], item['user_id']))
    return flagged


def get_switch_stats(db: Session, min_switches: int | None = None) -> dict:
    flagged = get_users_with_multiple_switches(db, min_switches)
    suspended_count = int(db.query(func.count(User.id)).filter(User.is_suspended.is_(True)).scalar() or 0)
    return {
        'total_switches': count_all_switches(db),
        'suspicious_users': len(flagged),
        'suspicious_unhandled': sum(1 for item in flagged if not item['is_suspended']),
        'suspended_users': suspended_count,
        'last_24h': {
            'switches': count_observability_events('batch_switch'),
            'noop_requests': count_observability_events('batch_switch_noop'),
            'blocked_attempts': count_observability_events('batch_switch_blocked'),
            'conflicts': count_observability_events('batch_switch_conflict'),
            'suspensions': count_observability_events('user_suspended'),
        },
    }
