import datetime
import logging

from sqlalchemy.orm import Session

from foresight.db.models import ForecastRecord, User, UserWeights
from foresight.models import CalibrationBucket, ForecasterStats, ForecastResult, Question
from foresight.scoring import calibration_buckets, mean_score, quadratic_score, score_label

logger = logging.getLogger(__name__)


class ForecastNotFoundError(LookupError):
    pass


class AlreadyResolvedError(RuntimeError):
    """Raised when an outcome is set on a forecast that already has one."""


class ForecastLogger:
    """Store forecasts, resolutions and weight overrides through a SQLAlchemy session."""

    def find_user(self, db: Session, username: str) -> User | None:
        """Look up a user by name without creating one."""
        return db.query(User).filter(User.username == username.strip()).first()

    def get_or_create_user(self, db: Session, username: str) -> User:
        username = username.strip()
        if not username:
            raise ValueError("Username required")
        user = db.query(User).filter(User.username == username).first()
        if user is None:
            user = User(username=username)
            db.add(user)
            db.commit()
            db.refresh(user)
            logger.info("Created user %s (id=%s)", username, user.id)
        return user

    def log_forecast(self, db: Session, question: Question, result: ForecastResult, user_id: int | None = None) -> int:
        payload = result.model_dump(mode="json")
        ref = result.reference_class
        record = ForecastRecord(
            user_id=user_id,
            question=question.text,
            domain=question.domain.value,
            news_window=question.news_window,
            probability=result.final_probability / 100,
            confidence_low=result.confidence_low / 100,
            confidence_high=result.confidence_high / 100,
            outside_view=result.outside_view_pct / 100,
            inside_view=result.inside_view_pct / 100,
            blend_ratio=result.blend_descriptor,
            factors=payload["factors"],
            base_rate_label=ref.label,
            base_rate_source=ref.source_citation,
            base_rate_value=ref.rate,
            base_rate_dataset=payload["reference_class"]["dataset"],
            article_count=result.total_article_count,
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        logger.info("Logged forecast %s for user %s", record.id, user_id)
        return record.id

    def get_forecast(self, db: Session, forecast_id: int) -> ForecastRecord:
        record = db.get(ForecastRecord, forecast_id)
        if record is None:
            raise ForecastNotFoundError(f"Forecast {forecast_id} not found")
        return record

    def resolve_forecast(self, db: Session, forecast_id: int, outcome: int) -> ForecastRecord:
        """Record the outcome and quadratic score. Resolution is terminal."""
        record = self.get_forecast(db, forecast_id)
        score = quadratic_score(record.probability, outcome)
        updated = (
            db.query(ForecastRecord)
            .filter(ForecastRecord.id == forecast_id, ForecastRecord.outcome.is_(None))
            .update(
                {
                    ForecastRecord.outcome: int(outcome),
                    ForecastRecord.brier_score: score,
                    ForecastRecord.resolved_at: datetime.datetime.now(datetime.timezone.utc),
                },
                synchronize_session=False,
            )
        )
        if not updated:
            db.rollback()
            raise AlreadyResolvedError(f"Forecast {forecast_id} is already resolved")
        db.commit()
        db.refresh(record)
        logger.info("Resolved forecast %s: outcome=%s score=%.4f", forecast_id, outcome, score)
        return record

    def list_forecasts(self, db: Session, user_id: int, status: str | None = None) -> list[ForecastRecord]:
        """A user's forecasts, newest first; *status* is "pending", "resolved" or None for all."""
        query = db.query(ForecastRecord).filter(ForecastRecord.user_id == user_id)
        if status == "pending":
            query = query.filter(ForecastRecord.outcome.is_(None))
        elif status == "resolved":
            query = query.filter(ForecastRecord.outcome.is_not(None))
        elif status not in (None, "all"):
            raise ValueError(f"Unknown status {status!r}")
        return query.order_by(ForecastRecord.created_at.desc(), ForecastRecord.id.desc()).all()

    def save_weights(self, db: Session, user_id: int, domain: str, weights: dict[str, float]) -> UserWeights:
        row = db.query(UserWeights).filter(UserWeights.user_id == user_id, UserWeights.domain == domain).first()
        if row is None:
            row = UserWeights(user_id=user_id, domain=domain, weights=dict(weights))
            db.add(row)
        else:
            row.weights = dict(weights)
        db.commit()
        db.refresh(row)
        return row

    def load_weights(self, db: Session, user_id: int, domain: str) -> dict[str, float] | None:
        row = db.query(UserWeights).filter(UserWeights.user_id == user_id, UserWeights.domain == domain).first()
        return dict(row.weights) if row else None

    def user_stats(self, db: Session, user: User) -> ForecasterStats:
        forecasts = db.query(ForecastRecord).filter(ForecastRecord.user_id == user.id).all()
        resolved = [f for f in forecasts if f.brier_score is not None]
        average = mean_score(f.brier_score for f in resolved)
        return ForecasterStats(
            user_id=user.id,
            username=user.username,
            total=len(forecasts),
            resolved=len(resolved),
            pending=len(forecasts) - len(resolved),
            average_score=average,
            label=score_label(average),
        )

    def leaderboard(self, db: Session) -> list[ForecasterStats]:
        """Scored users by ascending average score, then unscored users by forecast count."""
        stats = [self.user_stats(db, u) for u in db.query(User).all()]
        scored = sorted((s for s in stats if s.average_score is not None), key=lambda s: s.average_score)
        unscored = sorted((s for s in stats if s.average_score is None), key=lambda s: -s.total)
        return scored + unscored

    def calibration_for_user(self, db: Session, user_id: int) -> list[CalibrationBucket]:
        rows = (
            db.query(ForecastRecord)
            .filter(ForecastRecord.user_id == user_id, ForecastRecord.outcome.is_not(None))
            .all()
        )
        return calibration_buckets([(r.probability, r.outcome) for r in rows])
