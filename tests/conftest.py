import os

# Keep the application engine off the on-disk default database
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401
from app.database import Base
from app.domain.booking.service import BookingService
from app.domain.waitlist.service import WaitlistService
from helpers import FakeDispatcher, FixedClock


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def notifier():
    return FakeDispatcher()


@pytest.fixture
def booking_service(db, notifier, clock):
    return BookingService(db, notifier, clock)


@pytest.fixture
def waitlist_service(db, notifier, clock):
    return WaitlistService(db, notifier, clock)
