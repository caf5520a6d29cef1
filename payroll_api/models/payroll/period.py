from datetime import datetime
from payroll_api.extensions import db

PERIOD_STATUSES = ("draft", "processing", "pending_approval", "approved", "locked", "paid")


class PayrollPeriod(db.Model):
    __tablename__ = "payroll_periods"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    period_type = db.Column(db.String(20), nullable=False, default="monthly")
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    pay_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.Enum(*PERIOD_STATUSES, name="payroll_period_status_enum"),
                       nullable=False, default="draft")

    # aggregates written by the run orchestrator
    total_employees = db.Column(db.Integer, nullable=False, default=0)
    total_gross = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total_deductions = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total_net = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    processed_at = db.Column(db.DateTime)
    processed_by = db.Column(db.Integer)
    approved_at = db.Column(db.DateTime)
    approved_by = db.Column(db.Integer)
    locked_at = db.Column(db.DateTime)
    locked_by = db.Column(db.Integer)

    created_by = db.Column(db.Integer)
    updated_by = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    payrolls = db.relationship("Payroll", back_populates="period", lazy="select",
                               cascade="all, delete-orphan")

    __table_args__ = (
        db.CheckConstraint("start_date < end_date", name="ck_payroll_period_dates"),
        db.Index("ix_payroll_periods_window", "tenant_id", "start_date", "end_date", "status"),
    )
