"""
Pytest configuration for login_web. In-memory SQLite and a complete provider config,
set before any login_web module reads the environment.
"""
import os

import pytest

os.environ["LOGIN_DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SESSION_SECRET_KEY"] = "test-session-secret"
os.environ["BI_AUTH_BASE_URL"] = "https://idp.example"
os.environ["BI_TENANT_ID"] = "tenant1"
os.environ["BI_REALM_ID"] = "realm1"
os.environ["BI_APPLICATION_ID"] = "app1"
os.environ["BI_CLIENT_ID"] = "client1"
os.environ["BI_CLIENT_SECRET"] = "secret1"
os.environ["APP_REDIRECT_URI"] = "http://testserver/auth/callback"


@pytest.fixture
def provider_config():
    from login_web.config import load_provider_config

    return load_provider_config()


@pytest.fixture
def db():
    from login_web.database import SessionLocal, init_db

    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
