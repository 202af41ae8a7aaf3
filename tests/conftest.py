import os
import sys

os.environ["SECRET_KEY"] = "test-secret"
os.environ["AUTH_PROVIDER"] = "local"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_ALLOW_INMEMORY"] = "true"
os.environ["MAIL_SUPPRESS_SEND"] = "true"

sys.path.append(os.path.abspath("."))

import fakeredis
import pytest
from fakeredis import aioredis
from fastapi.testclient import TestClient
from fastapi_mail import FastMail
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from notechat import database
from notechat.auth import otp_rate_limiter
from notechat.core import get_mail_config
from notechat.database import Base, get_db
from notechat.mail import get_mailer
from notechat.store import Store
from main import app


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False)


# DB (SQLite in-memory, fresh for every test)
@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session(engine):
    session = TestingSessionLocal(bind=engine)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def store(db_session):
    return Store(db_session)


# Redis: the app talks to an async fakeredis, tests inspect through a sync
# client sharing the same in-memory server.
@pytest.fixture()
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture()
def redis_inspector(redis_server):
    return fakeredis.FakeRedis(server=redis_server, decode_responses=True)


@pytest.fixture()
def mailer():
    # MAIL_SUPPRESS_SEND keeps messages away from SMTP; record_messages() sees them
    return FastMail(get_mail_config())


@pytest.fixture()
def client(db_session, redis_server, mailer, monkeypatch):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[otp_rate_limiter] = lambda: None
    monkeypatch.setattr(
        database,
        "_redis_client",
        aioredis.FakeRedis(server=redis_server, decode_responses=True),
    )

    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
