from datetime import datetime, date
from payroll_api.extensions import db

RATE_TYPES = ("paye", "nssf", "nhif")


class StatutoryRate(db.Model):
    """Time-versioned statutory table. `config` is validated into a closed variant on load."""
    __tablename__ = "statutory_rates"

    id = db.Column(db.Integer, primary_key=True)
    country = db.Column(db.String(50), nullable=False)
    rate_type = db.Column(db.Enum(*RATE_TYPES, name="statutory_rate_type_enum"), nullable=False)
    effective_from = db.Column(db.Date, nullable=False, default=date.today)
    effective_to = db.Column(db.Date)
    config = db.Column(db.JSON, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("country", "rate_type", "effective_from", name="uq_rate_period"),
        db.Index("ix_statutory_rates_resolve", "country", "rate_type", "is_active",
                 "effective_from", "effective_to"),
    )
