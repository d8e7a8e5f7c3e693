from datetime import datetime, timezone
from umesao.extensions import db


class DocumentVersion(db.Model):
    """One immutable snapshot of a card's markdown; the blob lives in the object store."""

    __tablename__ = "markdown_files"

    card_id = db.Column(db.Integer, db.ForeignKey("cards.id", ondelete="CASCADE"), primary_key=True)
    ver = db.Column(db.Integer, primary_key=True, autoincrement=False)
    hash = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    chunks = db.relationship(
        "Chunk", backref="version", lazy="dynamic", cascade="all, delete-orphan", passive_deletes=True
    )

    def to_dict(self):
        return {
            "card_id": self.card_id,
            "version": self.ver,
            "hash": self.hash,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
