import pytest

from app import create_app
from models import db

PASSWORD = 'abcd'


@pytest.fixture
def app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'test.db'}",
        'SECRET_KEY': 'test-secret-key',
        'SEED_DATA': False,
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
        'ALLOWED_EMAILS': ['owner@example.com'],
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(client):
    """Configure the wholesale password and return headers that unlock it."""
    resp = client.post('/api/settings/setup', json={'password': PASSWORD})
    assert resp.status_code == 200
    return {'X-Wholesale-Password': PASSWORD}
