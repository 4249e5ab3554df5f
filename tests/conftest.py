import os

# In-memory database and no rate limiting for the app under test
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DISABLE_RATE_LIMIT", "true")
os.environ.setdefault("DISABLE_PAYMENT_CHECK", "false")

from datetime import datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from valuation_app.db import Base, Report, VinRecord
from valuation_app.repository import ReportRepository

VALID_VIN = "1HGBH41JXMN109186"
VALID_VIN_X = "1M8GDM9AXKP042788"


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def repository(db_session):
    return ReportRepository(db_session)


@pytest.fixture
def make_report(db_session):
    def _make_report(**overrides):
        fields = {
            "vin": VALID_VIN,
            "mileage": 35000,
            "zip_code": "10001",
            "email": "owner@example.com",
            "user_id": "user-456",
            "status": "pending",
            "price_paid": 0,
            "created_at": datetime(2026, 1, 1, 12, 0, 0),
        }
        fields.update(overrides)
        report = Report(**fields)
        db_session.add(report)
        db_session.commit()
        db_session.refresh(report)
        return report

    return _make_report


@pytest.fixture
def mock_db_session_post():
    # Create a mock database session
    mock_session = MagicMock()
    mock_vin_record = VinRecord(
        vin=VALID_VIN,
        make="HONDA",
        model="Accord",
        model_year="1991",
        body_class="Sedan",
    )
    mock_session.query().filter().first.return_value = mock_vin_record
    return mock_session


@pytest.fixture
def mock_db_session_no_data():
    mock_session = MagicMock()
    mock_session.query().filter().first.return_value = None
    return mock_session
