import numpy as np
from umesao.extensions import db


class Chunk(db.Model):
    __tablename__ = "chunks"

    card_id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    ver = db.Column(db.Integer, primary_key=True, autoincrement=False)
    model = db.Column(db.String(100), primary_key=True)
    idx = db.Column(db.Integer, primary_key=True, autoincrement=False)  # 0 is the whole text
    text = db.Column(db.Text, nullable=False)
    embedding = db.Column(db.LargeBinary, nullable=False)  # float32 numpy array as bytes

    __table_args__ = (
        db.ForeignKeyConstraint(
            ["card_id", "ver"],
            ["markdown_files.card_id", "markdown_files.ver"],
            ondelete="CASCADE",
        ),
    )

    @property
    def vector(self):
        return np.frombuffer(self.embedding, dtype=np.float32)

    def to_dict(self):
        return {
            "card_id": self.card_id,
            "version": self.ver,
            "idx": self.idx,
            "model": self.model,
            "text": self.text,
        }
