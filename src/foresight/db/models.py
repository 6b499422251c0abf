from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.sql import func

from foresight.config import settings

Base = declarative_base()


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(255), unique=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    forecasts = relationship("ForecastRecord", back_populates="user")
    weights = relationship("UserWeights", back_populates="user")


class ForecastRecord(Base):
    __tablename__ = "forecasts"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    question = Column(Text, nullable=False)
    domain = Column(String(32), nullable=False)
    news_window = Column(Integer, nullable=False)

    # Stored as 0–1 fractions
    probability = Column(Float, nullable=False)
    confidence_low = Column(Float, nullable=False)
    confidence_high = Column(Float, nullable=False)
    outside_view = Column(Float, nullable=False)
    inside_view = Column(Float, nullable=False)

    blend_ratio = Column(String(64))
    factors = Column(JSON)
    base_rate_label = Column(String(255))
    base_rate_source = Column(Text)
    base_rate_value = Column(Float)
    base_rate_dataset = Column(JSON)
    article_count = Column(Integer, default=0)

    # Set once on resolution, never changed afterwards
    outcome = Column(Integer, nullable=True)
    brier_score = Column(Float, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="forecasts")


class UserWeights(Base):
    """Per-domain factor-weight overrides, ``{factor_key: weight_pct}``."""

    __tablename__ = "user_weights"
    __table_args__ = (UniqueConstraint("user_id", "domain", name="uq_user_domain"),)
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    domain = Column(String(32), nullable=False)
    weights = Column(JSON, nullable=False)

    user = relationship("User", back_populates="weights")


engine = create_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_db_and_tables(bind=None):
    Base.metadata.create_all(bind=bind or engine)
