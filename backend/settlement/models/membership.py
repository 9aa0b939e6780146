from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ..values import PlanFeatures


SUBSCRIPTION_STATUS_ACTIVE = "ACTIVE"
SUBSCRIPTION_STATUS_PAST_DUE = "PAST_DUE"
SUBSCRIPTION_STATUS_CANCELLED = "CANCELLED"
SUBSCRIPTION_STATUS_INCOMPLETE = "INCOMPLETE"


class MembershipPlan(db.Model):
    """Recurring membership plan, priced by the processor per currency."""
    __tablename__ = "membership_plans"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    slug = db.Column(db.String(64), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)

    # Processor price ids, one per supported currency
    processor_price_czk = db.Column(db.String(128), nullable=True)
    processor_price_eur = db.Column(db.String(128), nullable=True)

    features_data = db.Column(db.JSON, nullable=False, default=lambda: PlanFeatures().to_dict())

    sort_order = db.Column(db.Integer, nullable=False, default=0)
    active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def features(self) -> PlanFeatures:
        return PlanFeatures.from_dict(self.features_data)

    @features.setter
    def features(self, value: PlanFeatures) -> None:
        self.features_data = value.to_dict()

    def price_for(self, currency: str) -> str | None:
        if currency == "EUR":
            return self.processor_price_eur
        if currency == "CZK":
            return self.processor_price_czk
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "processor_price_czk": self.processor_price_czk,
            "processor_price_eur": self.processor_price_eur,
            "features": self.features.flags,
            "sort_order": self.sort_order,
            "active": self.active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Subscription(db.Model):
    """
    Local mirror of a processor-managed subscription.

    Created on the first "created" signal, then updated in place by
    "updated"/"deleted" signals keyed by external_ref. At most one row per
    user should be ACTIVE with a future period end; this is not enforced by
    the schema.
    """
    __tablename__ = "subscriptions"
    __table_args__ = (
        db.Index("ix_subscriptions_user_status", "user_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    plan_id = db.Column(db.Integer, db.ForeignKey("membership_plans.id"), nullable=False)

    external_ref = db.Column(db.String(128), nullable=False, unique=True)
    status = db.Column(db.String(32), nullable=False)

    current_period_start = db.Column(db.DateTime, nullable=True)
    current_period_end = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    plan = db.relationship("MembershipPlan", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "plan_id": self.plan_id,
            "plan_name": self.plan.name if self.plan else None,
            "external_ref": self.external_ref,
            "status": self.status,
            "current_period_start": to_utc_z(self.current_period_start),
            "current_period_end": to_utc_z(self.current_period_end),
            "cancelled_at": to_utc_z(self.cancelled_at),
        }
