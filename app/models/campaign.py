"""
SaaS Operations Dashboard
Marketing domain models.

Models:
    - Campaign: a marketing campaign with budget and funnel counters
    - CampaignMetric: one dated performance sample for a campaign
    - CampaignTemplate: reusable campaign blueprint; seeded rows are shared by
      every user, user-created rows are editable only by their author
"""

from app.models import db
from app.models.base import OwnedModel, TimestampMixin, iso

# ── Constants ────────────────────────────────────────────────────────────────

CAMPAIGN_TYPES = {"email", "social", "content", "ads", "event"}
CAMPAIGN_STATUSES = {"draft", "scheduled", "active", "paused", "completed"}
TEMPLATE_DIFFICULTIES = ("beginner", "intermediate", "advanced")


def _ratio(numerator, denominator, scale=1.0):
    if not denominator:
        return 0.0
    return (numerator / denominator) * scale


def derive_rates(*, impressions=0, clicks=0, conversions=0, cost=0.0, revenue=0.0) -> dict:
    """Compute the derived performance rates of a metrics sample.

    Every rate is 0 when its denominator is 0.
    """
    impressions = impressions or 0
    clicks = clicks or 0
    conversions = conversions or 0
    cost = cost or 0.0
    revenue = revenue or 0.0
    click_rate = _ratio(clicks, impressions, 100)
    return {
        "click_rate": click_rate,
        "ctr": click_rate,
        "conversion_rate": _ratio(conversions, clicks, 100),
        "roi": _ratio(revenue - cost, cost, 100),
        "cpc": _ratio(cost, clicks),
        "cpa": _ratio(cost, conversions),
        "roas": _ratio(revenue, cost),
    }


class Campaign(OwnedModel):
    __tablename__ = "marketing_campaigns"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    type = db.Column(db.String(20), nullable=False, comment="email | social | content | ads | event")
    status = db.Column(
        db.String(20), nullable=False, default="draft",
        comment="draft | scheduled | active | paused | completed",
    )
    description = db.Column(db.Text, default="")
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)
    budget = db.Column(db.Float, nullable=False, default=0.0)
    spent = db.Column(db.Float, nullable=False, default=0.0)
    leads = db.Column(db.Integer, nullable=False, default=0)
    conversions = db.Column(db.Integer, nullable=False, default=0)
    roi = db.Column(db.Float, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "type": self.type,
            "status": self.status,
            "description": self.description,
            "start_date": iso(self.start_date),
            "end_date": iso(self.end_date),
            "budget": self.budget,
            "spent": self.spent,
            "leads": self.leads,
            "conversions": self.conversions,
            "roi": self.roi,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Campaign {self.id}: {self.name}>"


class CampaignMetric(TimestampMixin, db.Model):
    """Dated performance sample; rates are derived, never stored."""

    __tablename__ = "campaign_metrics"

    id = db.Column(db.Integer, primary_key=True)
    campaign_id = db.Column(db.Integer, db.ForeignKey("marketing_campaigns.id"), nullable=False, index=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    impressions = db.Column(db.Integer, nullable=False, default=0)
    clicks = db.Column(db.Integer, nullable=False, default=0)
    conversions = db.Column(db.Integer, nullable=False, default=0)
    open_rate = db.Column(db.Float, nullable=True, comment="Email campaigns only, 0-100")
    cost = db.Column(db.Float, nullable=False, default=0.0)
    revenue = db.Column(db.Float, nullable=False, default=0.0)

    @property
    def rates(self) -> dict:
        return derive_rates(
            impressions=self.impressions,
            clicks=self.clicks,
            conversions=self.conversions,
            cost=self.cost,
            revenue=self.revenue,
        )

    def to_dict(self):
        return {
            "id": self.id,
            "campaign_id": self.campaign_id,
            "date": iso(self.date),
            "impressions": self.impressions,
            "clicks": self.clicks,
            "conversions": self.conversions,
            "open_rate": self.open_rate,
            "cost": self.cost,
            "revenue": self.revenue,
            **self.rates,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<CampaignMetric {self.id} campaign={self.campaign_id}>"


class CampaignTemplate(TimestampMixin, db.Model):
    __tablename__ = "campaign_templates"

    id = db.Column(db.Integer, primary_key=True)
    created_by = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=True, index=True,
        comment="NULL for the shared seeded catalog",
    )
    name = db.Column(db.String(200), nullable=False)
    type = db.Column(db.String(20), nullable=False, index=True, comment="email | social | content | ads | event")
    description = db.Column(db.Text, default="")
    difficulty = db.Column(
        db.String(20), nullable=False, default="beginner", index=True,
        comment="beginner | intermediate | advanced",
    )
    estimated_time = db.Column(db.String(100), nullable=True)
    popularity = db.Column(db.Integer, nullable=False, default=0)
    content = db.Column(db.Text, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "created_by": self.created_by,
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "difficulty": self.difficulty,
            "estimated_time": self.estimated_time,
            "popularity": self.popularity,
            "content": self.content,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<CampaignTemplate {self.id}: {self.name}>"
