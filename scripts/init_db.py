from pathlib import Path
import sys


# Ensure imports work when running this file directly: `python scripts/init_db.py`.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from batchguard.db import Base, SessionLocal, engine
from batchguard.models import Batch, Role, User


Base.metadata.create_all(bind=engine)

db = SessionLocal()
try:
    if not db.query(Batch).first():
        batches = [
            Batch(name='JEE Morning', description='JEE Main + Advanced, morning slot'),
            Batch(name='JEE Evening', description='JEE Main + Advanced, evening slot'),
            Batch(name='NEET Weekend', description='NEET weekend batch'),
            Batch(name='Foundation 2024', description='Archived foundation batch', is_active=False),
        ]
        db.add_all(batches)
        db.commit()

        users = [
            User(external_id='admin-1', name='Meera Admin', email='admin@example.com', role=Role.ADMIN.value),
            User(external_id='student-aarav', name='Aarav', email='aarav@example.com', current_batch_id=batches[0].id),
            User(external_id='student-diya', name='Diya', email='diya@example.com', current_batch_id=batches[1].id),
            User(external_id='student-ishaan', name='Ishaan', email='ishaan@example.com'),
        ]
        db.add_all(users)
        db.commit()
finally:
    db.close()

print('DB initialized with sample data.')
