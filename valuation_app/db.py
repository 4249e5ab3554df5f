import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    create_engine,
)
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import settings


def utcnow() -> datetime:
    # SQLite drops tzinfo, so timestamps are stored as naive UTC everywhere
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_report_id() -> str:
    return str(uuid.uuid4())


# In FastAPI, more than one thread can interact with the database for the same request
connect_args = (
    {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
)
engine = create_engine(settings.database_url, connect_args=connect_args)

# each instance of the SessionLocal class becomes a db session
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# parent class for the ORM models
Base = declarative_base()


class VinRecord(Base):
    __tablename__ = "vin_records"

    vin = Column(String(17), primary_key=True, index=True)
    make = Column(String)
    model = Column(String)
    model_year = Column(String)
    body_class = Column(String)


class Report(Base):
    __tablename__ = "reports"

    id = Column(String(36), primary_key=True, default=new_report_id)
    # NULL until the report is linked to an account
    user_id = Column(String, index=True, nullable=True)
    email = Column(String, index=True, nullable=True)
    vin = Column(String(17), index=True, nullable=False)
    mileage = Column(Integer)
    zip_code = Column(String(5))
    status = Column(String, default="pending")
    # Either processor id marks the report as paid
    stripe_payment_id = Column(String, nullable=True)
    lemon_squeezy_payment_id = Column(String, nullable=True)
    price_paid = Column(Float, default=0)
    vehicle_data = Column(JSON, nullable=True)
    valuation_result = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)


class ApiCallLog(Base):
    __tablename__ = "api_call_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    report_id = Column(String(36), index=True)
    api_provider = Column(String)
    endpoint = Column(String)
    success = Column(Boolean)
    response_time_ms = Column(Integer)
    cost = Column(Float, default=0)
    error_message = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)


Base.metadata.create_all(bind=engine)


def get_db():
    """
    Dependency function to get a database session.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
