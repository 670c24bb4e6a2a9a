from pathlib import Path
import os
import tempfile
import uuid

import pytest

# point the app at throwaway storage before it is imported
_TMP = Path(tempfile.mkdtemp(prefix="dronegarden-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP / 'app.db'}")
os.environ.setdefault("PROVIDER_CONFIG_FILE", str(_TMP / "provider_config.json"))
os.environ.setdefault("ADMIN_EMAILS", "admin@drone-partss.com")

ADMIN_EMAIL = "admin@drone-partss.com"
ADMIN_PASSWORD = "adminpass"


@pytest.fixture(scope="session", autouse=True)
def reset_db():
    """Ensure a fresh SQLite database for tests."""
    db_path = _TMP / "app.db"
    yield
    if db_path.exists():
        try:
            db_path.unlink()
        except OSError:
            pass


@pytest.fixture(autouse=True)
def reset_state():
    """Forget saved provider credentials and rate-limit hits between tests."""
    from dronegarden import main
    from dronegarden.config import provider_store

    provider_store.path.unlink(missing_ok=True)
    provider_store.reset()
    main._forgot_limiter.reset()
    main.app.dependency_overrides.clear()
    yield
    main.app.dependency_overrides.clear()


def unique_email(prefix="user"):
    return f"{prefix}-{uuid.uuid4().hex[:8]}@example.com"


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers():
    from fastapi.testclient import TestClient
    from dronegarden.main import app

    client = TestClient(app)
    r = client.post("/api/auth/register", json={"email": unique_email(), "password": "pass123", "name": "Ana"})
    assert r.status_code == 201
    return auth_headers(r.json()["token"])


@pytest.fixture
def admin_headers():
    from fastapi.testclient import TestClient
    from dronegarden.main import app

    client = TestClient(app)
    r = client.post("/api/auth/register", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    if r.status_code == 400:
        r = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert r.status_code in (200, 201)
    return auth_headers(r.json()["token"])
