import os
from datetime import date

import pytest

os.environ['DATABASE_URL'] = 'sqlite:///:memory:'

import app as tracker  # noqa: E402

TODAY = date(2024, 5, 10)


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(tracker, 'current_day', lambda: TODAY)
    with tracker.app.app_context():
        tracker.db.drop_all()
        tracker.db.create_all()
    tracker.app.config['TESTING'] = True
    with tracker.app.test_client() as c:
        yield c


@pytest.fixture
def app_ctx():
    with tracker.app.app_context():
        tracker.db.drop_all()
        tracker.db.create_all()
        yield tracker
