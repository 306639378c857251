from pathlib import Path

import pytest

from app import create_app
from models import db


@pytest.fixture()
def app(tmp_path: Path):
    """App bound to a throwaway SQLite file."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'test.db'}",
        'JWT_SECRET': 'test-secret-0123456789abcdef0123456789',
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture()
def client(app):
    return app.test_client()


def register_and_login(client, username='alice', password='s3cret'):
    r = client.post('/api/register', json={'username': username, 'password': password})
    assert r.status_code == 201, r.get_json()
    r = client.post('/api/login', json={'username': username, 'password': password})
    assert r.status_code == 200, r.get_json()
    return client


@pytest.fixture()
def logged_in(client):
    return register_and_login(client)
