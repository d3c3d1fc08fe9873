import tempfile
import unittest
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from batchguard.config import settings
from batchguard.core.errors import InvalidBatchTargetError, SwitchForbiddenError, SwitchNotFoundError
from batchguard.db import Base
from batchguard.models import Batch, BatchSwitchHistory, User
from batchguard.services.batch_switch_service import switch_batch
from batchguard.services.suspension_service import list_suspended_users, suspend_user, unsuspend_user


class SuspensionServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_suspension_service.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

    @classmethod
    def tearDownClass(cls):
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        db = self._session_factory()
        try:
            for table in (BatchSwitchHistory, User, Batch):
                db.query(table).delete()
            db.commit()
            active = Batch(name='Active Batch', is_active=True)
            other = Batch(name='Other Batch', is_active=True)
            closed = Batch(name='Closed Batch', is_active=False)
            db.add_all([active, other, closed])
            db.commit()
            admin = User(external_id='admin', name='Anita Admin', email='anita@example.com', role='admin')
            teacher = User(external_id='teacher', name='Tarun', email='tarun@example.com', role='teacher')
            student = User(
                external_id='student',
                name='Sana',
                email='sana@example.com',
                role='student',
                current_batch_id=active.id,
            )
            db.add_all([admin, teacher, student])
            db.commit()
            self.active, self.other, self.closed = int(active.id), int(other.id), int(closed.id)
            self.admin_id, self.teacher_id, self.student_id = int(admin.id), int(teacher.id), int(student.id)
        finally:
            db.close()

    def _student(self):
        db = self._session_factory()
        try:
            row = db.query(User).filter(User.id == self.student_id).first()
            db.expunge(row)
            return row
        finally:
            db.close()

    def test_only_admins_can_suspend(self):
        db = self._session_factory()
        try:
            with self.assertRaises(SwitchForbiddenError):
                suspend_user(db, user_id=self.student_id, admin_id=self.teacher_id)
        finally:
            db.close()
        self.assertFalse(self._student().is_suspended)

    def test_admin_accounts_cannot_be_suspended(self):
        db = self._session_factory()
        try:
            with self.assertRaises(SwitchForbiddenError):
                suspend_user(db, user_id=self.admin_id, admin_id=self.admin_id)
        finally:
            db.close()

    def test_mixed_case_admin_role_is_recognised(self):
        db = self._session_factory()
        try:
            db.query(User).filter(User.id == self.admin_id).update({'role': 'Admin'})
            db.commit()
            self.assertEqual(suspend_user(db, user_id=self.student_id, admin_id=self.admin_id), {'success': True})
            with self.assertRaises(SwitchForbiddenError):
                suspend_user(db, user_id=self.admin_id, admin_id=self.admin_id)
        finally:
            db.close()
        self.assertTrue(self._student().is_suspended)

    def test_suspend_unknown_user_is_not_found(self):
        db = self._session_factory()
        try:
            with self.assertRaises(SwitchNotFoundError):
                suspend_user(db, user_id=self.student_id + 999, admin_id=self.admin_id)
        finally:
            db.close()

    def test_suspend_records_actor_and_default_reason(self):
        db = self._session_factory()
        try:
            self.assertEqual(suspend_user(db, user_id=self.student_id, admin_id=self.admin_id), {'success': True})
        finally:
            db.close()
        student = self._student()
        self.assertTrue(student.is_suspended)
        self.assertEqual(student.suspended_by, self.admin_id)
        self.assertIsNotNone(student.suspended_at)
        self.assertEqual(student.suspend_reason, settings.default_suspend_reason)
        self.assertEqual(student.current_batch_id, self.active)

    def test_unsuspend_requires_active_batch(self):
        db = self._session_factory()
        try:
            suspend_user(db, user_id=self.student_id, admin_id=self.admin_id, reason='Switch abuse')
            with self.assertRaises(InvalidBatchTargetError):
                unsuspend_user(db, user_id=self.student_id, admin_id=self.admin_id, batch_id=self.closed)
        finally:
            db.close()
        self.assertTrue(self._student().is_suspended)

    def test_unsuspend_assigns_batch_locks_and_skips_ledger(self):
        db = self._session_factory()
        try:
            suspend_user(db, user_id=self.student_id, admin_id=self.admin_id, reason='Switch abuse')
            unsuspend_user(db, user_id=self.student_id, admin_id=self.admin_id, batch_id=self.other)
            ledger_rows = db.query(BatchSwitchHistory).count()
        finally:
            db.close()
        student = self._student()
        self.assertFalse(student.is_suspended)
        self.assertIsNone(student.suspend_reason)
        self.assertIsNone(student.suspended_by)
        self.assertTrue(student.batch_locked)
        self.assertEqual(student.current_batch_id, self.other)
        self.assertEqual(ledger_rows, 0)

    def test_locked_state_blocks_every_later_switch(self):
        db = self._session_factory()
        try:
            suspend_user(db, user_id=self.student_id, admin_id=self.admin_id)
            unsuspend_user(db, user_id=self.student_id, admin_id=self.admin_id, batch_id=self.other)
            for target in (self.active, self.other):
                with self.assertRaises(SwitchForbiddenError):
                    switch_batch(db, self.student_id, target)
            ledger_rows = db.query(BatchSwitchHistory).count()
        finally:
            db.close()
        self.assertEqual(ledger_rows, 0)

    def test_list_suspended_users_is_enriched(self):
        db = self._session_factory()
        try:
            suspend_user(db, user_id=self.student_id, admin_id=self.admin_id, reason='Switch abuse')
            suspend_user(db, user_id=self.teacher_id, admin_id=self.admin_id)
            items = list_suspended_users(db)
        finally:
            db.close()
        by_id = {item['user_id']: item for item in items}
        self.assertEqual(set(by_id), {self.student_id, self.teacher_id})
        self.assertEqual(by_id[self.student_id]['batch_name'], 'Active Batch')
        self.assertEqual(by_id[self.student_id]['suspend_reason'], 'Switch abuse')
        self.assertEqual(by_id[self.student_id]['suspended_by_name'], 'Anita Admin')
        self.assertEqual(by_id[self.teacher_id]['batch_name'], 'No Batch')


if __name__ == '__main__':
    unittest.main()
