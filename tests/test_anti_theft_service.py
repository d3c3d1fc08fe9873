import tempfile
import unittest
from datetime import datetime, timedelta
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from batchguard.db import Base
from batchguard.models import Batch, BatchSwitchHistory, User
from batchguard.services.anti_theft_service import get_switch_stats, get_users_with_multiple_switches
from batchguard.services.observability_counters import clear_observability_events


BASE_TIME = datetime(2026, 9, 1, 8, 0, 0)


class AntiTheftServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_anti_theft_service.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

    @classmethod
    def tearDownClass(cls):
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        clear_observability_events()
        db = self._session_factory()
        try:
            for table in (BatchSwitchHistory, User, Batch):
                db.query(table).delete()
            db.commit()
            batch_x = Batch(name='Batch X', is_active=True)
            batch_y = Batch(name='Batch Y', is_active=True)
            db.add_all([batch_x, batch_y])
            db.commit()
            self.batch_x, self.batch_y = int(batch_x.id), int(batch_y.id)
            users = {
                'A': User(external_id='a', name='Asha', email='asha@example.com', current_batch_id=self.batch_y),
                'B': User(external_id='b', name='Bala', email='bala@example.com', current_batch_id=self.batch_x),
                'C': User(external_id='c', name='Chetan', email='chetan@example.com', current_batch_id=self.batch_x),
                'D': User(external_id='d', name='Dev Admin', email='dev@example.com', role='admin'),
            }
            db.add_all(users.values())
            db.commit()
            self.ids = {key: int(user.id) for key, user in users.items()}
        finally:
            db.close()

    def _seed_ledger(self, sequence):
        db = self._session_factory()
        try:
            for offset, key in enumerate(sequence):
                to_batch = self.batch_x if offset % 2 == 0 else self.batch_y
                db.add(
                    BatchSwitchHistory(
                        user_id=self.ids[key],
                        from_batch_id=None,
                        to_batch_id=to_batch,
                        switched_at=BASE_TIME + timedelta(minutes=offset),
                    )
                )
            db.commit()
        finally:
            db.close()

    def _flag(self, min_switches=None):
        db = self._session_factory()
        try:
            return get_users_with_multiple_switches(db, min_switches)
        finally:
            db.close()

    def test_threshold_selects_users_at_or_above_minimum(self):
        self._seed_ledger(['A', 'B', 'C', 'A', 'C', 'A'])
        flagged = self._flag(2)
        self.assertEqual([item['user_id'] for item in flagged], [self.ids['A'], self.ids['C']])
        self.assertEqual([item['switch_count'] for item in flagged], [3, 2])
        self.assertEqual(flagged[0]['batch_name'], 'Batch Y')
        self.assertEqual(flagged[0]['email'], 'asha@example.com')
        self.assertFalse(flagged[0]['is_suspended'])

    def test_result_does_not_depend_on_insertion_order(self):
        self._seed_ledger(['C', 'A', 'A', 'B', 'C', 'A'])
        flagged = self._flag(2)
        self.assertEqual(
            [(item['user_id'], item['switch_count']) for item in flagged],
            [(self.ids['A'], 3), (self.ids['C'], 2)],
        )

    def test_admins_are_never_flagged(self):
        self._seed_ledger(['D'] * 5 + ['A', 'A'])
        flagged_ids = [item['user_id'] for item in self._flag(2)]
        self.assertNotIn(self.ids['D'], flagged_ids)
        self.assertEqual(flagged_ids, [self.ids['A']])

    def test_admin_role_match_ignores_case(self):
        self._update_role('D', ' Admin ')
        self._update_role('A', 'STUDENT')
        self._seed_ledger(['D', 'D', 'D', 'A', 'A'])
        flagged = self._flag(2)
        self.assertEqual([item['user_id'] for item in flagged], [self.ids['A']])
        self.assertEqual(flagged[0]['role'], 'student')

    def _update_role(self, key, role):
        db = self._session_factory()
        try:
            db.query(User).filter(User.id == self.ids[key]).update({'role': role})
            db.commit()
        finally:
            db.close()

    def test_suspended_users_remain_listed(self):
        self._seed_ledger(['B', 'B', 'B'])
        db = self._session_factory()
        try:
            db.query(User).filter(User.id == self.ids['B']).update({'is_suspended': True})
            db.commit()
        finally:
            db.close()
        flagged = self._flag(2)
        self.assertEqual(len(flagged), 1)
        self.assertTrue(flagged[0]['is_suspended'])
        self.assertEqual(flagged[0]['switch_count'], 3)

    def test_ties_are_ordered_by_user_id(self):
        self._seed_ledger(['C', 'B', 'C', 'B'])
        flagged = self._flag(2)
        self.assertEqual([item['user_id'] for item in flagged], sorted([self.ids['B'], self.ids['C']]))

    def test_default_threshold_is_two(self):
        self._seed_ledger(['A', 'A', 'B'])
        self.assertEqual([item['user_id'] for item in self._flag()], [self.ids['A']])
        self.assertEqual([item['user_id'] for item in self._flag(0)], [self.ids['A']])

    def test_unassigned_user_reports_no_batch(self):
        self._seed_ledger(['A', 'A'])
        db = self._session_factory()
        try:
            db.query(User).filter(User.id == self.ids['A']).update({'current_batch_id': None})
            db.commit()
        finally:
            db.close()
        self.assertEqual(self._flag(2)[0]['batch_name'], 'No Batch')

    def test_stats_summarize_ledger_and_suspensions(self):
        self._seed_ledger(['A', 'A', 'C', 'C', 'B'])
        db = self._session_factory()
        try:
            db.query(User).filter(User.id == self.ids['C']).update({'is_suspended': True})
            db.commit()
            stats = get_switch_stats(db, 2)
        finally:
            db.close()
        self.assertEqual(stats['total_switches'], 5)
        self.assertEqual(stats['suspicious_users'], 2)
        self.assertEqual(stats['suspicious_unhandled'], 1)
        self.assertEqual(stats['suspended_users'], 1)
        self.assertEqual(stats['last_24h']['switches'], 0)


if __name__ == '__main__':
    unittest.main()
