from datetime import datetime
from payroll_api.extensions import db

TAX_TYPES = ("PAYE", "NSSF", "NHIF")


class TaxRemittance(db.Model):
    __tablename__ = "tax_remittances"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, nullable=False, index=True)
    payroll_period_id = db.Column(db.Integer, db.ForeignKey("payroll_periods.id"), nullable=False, index=True)
    tax_type = db.Column(db.Enum(*TAX_TYPES, name="tax_type_enum"), nullable=False)
    amount = db.Column(db.Numeric(15, 2), nullable=False)
    due_date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(db.Enum("pending", "remitted", name="remittance_status_enum"),
                       nullable=False, default="pending", index=True)

    remitted_at = db.Column(db.DateTime)
    remitted_by = db.Column(db.Integer)
    remittance_reference = db.Column(db.String(100))
    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    period = db.relationship("PayrollPeriod", lazy="joined")

    __table_args__ = (
        db.UniqueConstraint("payroll_period_id", "tax_type", name="uq_remittance_period_tax_type"),
    )
