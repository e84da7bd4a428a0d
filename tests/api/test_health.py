from unittest.mock import MagicMock, patch

import pytest
import redis
from fastapi.testclient import TestClient

from photoset.api.routes import health
from photoset.db.session import get_db
from photoset.main import app


@pytest.fixture
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_ready(client):
    with patch.object(health.redis.Redis, "from_url", return_value=MagicMock()):
        response = client.get("/ready")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["maintenance"] is False
    assert data["checks"]["database"] == "ok"
    assert data["checks"]["queue"] == "configured"


def test_not_ready_without_redis(client):
    broken = MagicMock()
    broken.ping.side_effect = redis.ConnectionError("refused")
    with patch.object(health.redis.Redis, "from_url", return_value=broken):
        response = client.get("/ready")

    assert response.status_code == 503
    assert response.json()["checks"]["redis"] == "error: ConnectionError"
