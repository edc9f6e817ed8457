import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from projectboard.config import settings
from projectboard.db import Base, get_db
from projectboard.main import app


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    monkeypatch.setattr(settings, "expose_otp", True)
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)
    monkeypatch.setattr(settings, "smtp_host", "")


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def signup(client):
    """Register an account through the OTP flow and return its auth headers."""

    def _signup(email: str) -> dict:
        otp = client.post("/auth/signup/send-otp", json={"email": email}).json()["otp"]
        body = client.post("/auth/signup/verify", json={"email": email, "otp": otp}).json()
        return {"Authorization": f"Bearer {body['token']}"}

    return _signup
