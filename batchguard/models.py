from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from batchguard.db import Base


class Role(str, Enum):
    ADMIN = 'admin'
    TEACHER = 'teacher'
    STUDENT = 'student'


class Batch(Base):
    __tablename__ = 'batches'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(120), unique=True)
    description: Mapped[str] = mapped_column(Text, default='')
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class User(Base):
    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    external_id: Mapped[str] = mapped_column(String(120), unique=True, index=True)
    email: Mapped[str] = mapped_column(String(255), default='', index=True)
    name: Mapped[str] = mapped_column(String(180), default='')
    role: Mapped[str] = mapped_column(String(20), default=Role.STUDENT.value, index=True)
    current_batch_id: Mapped[int | None] = mapped_column(ForeignKey('batches.id'), nullable=True, index=True)
    is_suspended: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    suspended_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    suspended_by: Mapped[int | None] = mapped_column(ForeignKey('users.id'), nullable=True)
    suspend_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    # Set by operator reassignment on unsuspend; never cleared by self-service paths.
    batch_locked: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class BatchSwitchHistory(Base):
    __tablename__ = 'batch_switch_history'
    __table_args__ = (
        UniqueConstraint('user_id', 'switched_at', name='uq_batch_switch_history_user_switched_at'),
        Index('ix_batch_switch_history_user_switched_at', 'user_id', 'switched_at'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id'), index=True)
    from_batch_id: Mapped[int | None] = mapped_column(ForeignKey('batches.id'), nullable=True)
    to_batch_id: Mapped[int] = mapped_column(ForeignKey('batches.id'))
    switched_at: Mapped[datetime] = mapped_column(DateTime, index=True)
