from datetime import datetime, timezone
from umesao.extensions import db


class Card(db.Model):
    __tablename__ = "cards"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)

    # Relationships
    images = db.relationship(
        "Image", backref="card", lazy="select", cascade="all, delete-orphan", passive_deletes=True
    )
    versions = db.relationship(
        "DocumentVersion",
        backref="card",
        lazy="select",
        order_by="DocumentVersion.ver",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def latest_version(self):
        return self.versions[-1].ver if self.versions else None

    def to_dict(self):
        return {
            "id": self.id,
            "latest_version": self.latest_version,
            "versions": [v.to_dict() for v in self.versions],
            "images": [i.to_dict() for i in self.images],
        }


class Image(db.Model):
    __tablename__ = "images"

    card_id = db.Column(db.Integer, db.ForeignKey("cards.id", ondelete="CASCADE"), primary_key=True)
    filename = db.Column(db.Text, primary_key=True)
    method = db.Column(db.String(20), nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "card_id": self.card_id,
            "filename": self.filename,
            "method": self.method,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
