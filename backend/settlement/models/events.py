from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class EventPublication(db.Model):
    """
    Outbox row: one per (event, listener).

    Written in the same transaction as the state change that raised the
    event. completed_at stays NULL until the listener has run successfully,
    so incomplete rows can be re-dispatched.
    """
    __tablename__ = "event_publications"
    __table_args__ = (
        db.Index("ix_event_publications_pending", "completed_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(64), nullable=False, index=True)
    listener = db.Column(db.String(128), nullable=False)
    payload = db.Column(db.JSON, nullable=False)

    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "listener": self.listener,
            "payload": self.payload,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
        }
