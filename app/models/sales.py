"""
SaaS Operations Dashboard
Sales CRM domain models.

Models:
    - Customer: a contact/company in the user's book of business
    - Deal: a sales opportunity tied to a customer
    - SalesActivity: a call, email, meeting, ... logged against a customer

Hierarchy: Customer -> Deal, Customer -> SalesActivity (optionally -> Deal).
"""

from app.models import db
from app.models.base import OwnedModel, iso

# ── Constants ────────────────────────────────────────────────────────────────

CUSTOMER_STATUSES = {"lead", "prospect", "active", "inactive", "churned"}

DEAL_STAGES = ("lead", "qualified", "proposal", "negotiation", "closed-won", "closed-lost")
CLOSED_STAGES = frozenset({"closed-won", "closed-lost"})
FUNNEL_STAGES = ("lead", "qualified", "proposal", "negotiation", "closed-won")

SALES_ACTIVITY_TYPES = {"call", "email", "meeting", "note", "task", "demo", "follow_up"}


class Customer(OwnedModel):
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("user_id", "email", name="uq_customer_user_email"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=False, index=True)
    company = db.Column(db.String(200), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    website = db.Column(db.String(300), nullable=True)
    industry = db.Column(db.String(100), nullable=True)
    size = db.Column(db.String(50), nullable=True, comment="Company size band, e.g. 1-10, 11-50")
    status = db.Column(
        db.String(20), nullable=False, default="lead",
        comment="lead | prospect | active | inactive | churned",
    )
    value = db.Column(db.Float, nullable=False, default=0.0)
    notes = db.Column(db.Text, nullable=True)
    last_contact = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "email": self.email,
            "company": self.company,
            "phone": self.phone,
            "website": self.website,
            "industry": self.industry,
            "size": self.size,
            "status": self.status,
            "value": self.value,
            "notes": self.notes,
            "last_contact": iso(self.last_contact),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Customer {self.id}: {self.email}>"


class Deal(OwnedModel):
    __tablename__ = "deals"

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True)
    stage = db.Column(db.String(20), nullable=False, default="lead", index=True)
    value = db.Column(db.Float, nullable=False, default=0.0)
    probability = db.Column(db.Integer, nullable=False, default=0, comment="Win probability 0-100")
    expected_close_date = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_close_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    @property
    def is_closed(self) -> bool:
        return self.stage in CLOSED_STAGES

    @property
    def weighted_value(self) -> float:
        return (self.value or 0.0) * ((self.probability or 0) / 100)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "customer_id": self.customer_id,
            "title": self.title,
            "description": self.description,
            "stage": self.stage,
            "value": self.value,
            "probability": self.probability,
            "expected_close_date": iso(self.expected_close_date),
            "actual_close_date": iso(self.actual_close_date),
            "notes": self.notes,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Deal {self.id}: {self.title[:40]} [{self.stage}]>"


class SalesActivity(OwnedModel):
    __tablename__ = "sales_activities"

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    deal_id = db.Column(db.Integer, db.ForeignKey("deals.id"), nullable=True, index=True)
    type = db.Column(db.String(20), nullable=False, comment="call | email | meeting | note | task | demo | follow_up")
    description = db.Column(db.Text, nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False)
    scheduled_date = db.Column(db.DateTime(timezone=True), nullable=True)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    outcome = db.Column(db.Text, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "customer_id": self.customer_id,
            "deal_id": self.deal_id,
            "type": self.type,
            "description": self.description,
            "date": iso(self.date),
            "scheduled_date": iso(self.scheduled_date),
            "completed": self.completed,
            "outcome": self.outcome,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<SalesActivity {self.id}: {self.type} customer={self.customer_id}>"
