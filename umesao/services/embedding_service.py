import logging
import numpy as np
from sqlalchemy import insert
from sqlalchemy.exc import IntegrityError
from umesao.errors import StorageConstraintError
from umesao.models.chunk import Chunk
from umesao.models.document_version import DocumentVersion
from umesao.services.chunker import is_blank

logger = logging.getLogger(__name__)


def to_vector(values):
    """Coerce provider output to the float32 layout chunks are stored in."""
    return np.asarray(values, dtype=np.float32)


class EmbeddingStore:
    """
    Maps chunks to embedding vectors and persists them as chunk rows.

    provider: anything with embeddings(texts, model=..., dimensions=...)
    returning vectors in input order (see OpenAIService.embeddings).
    """

    def __init__(self, session, provider, model, dimensions):
        self.session = session
        self.provider = provider
        self.model = model
        self.dimensions = dimensions

    def embed_chunks(self, chunks):
        """
        Embed every non-blank chunk.

        Returns a list aligned with chunks; blank chunks get None since the
        embedding API refuses empty input and they are never stored anyway.
        """
        positions = [i for i, text in enumerate(chunks) if not is_blank(text)]
        if not positions:
            return [None] * len(chunks)

        embedded = self.provider.embeddings(
            [chunks[i] for i in positions], model=self.model, dimensions=self.dimensions
        )
        vectors = [None] * len(chunks)
        for i, vector in zip(positions, embedded):
            vectors[i] = to_vector(vector)
        return vectors

    def embed_query(self, text):
        vectors = self.provider.embeddings([text], model=self.model, dimensions=self.dimensions)
        return to_vector(vectors[0])

    def store(self, card_id, version, chunks, vectors, model=None):
        """
        Persist one chunk row per non-blank chunk. Does not commit.

        chunks[i] is stored with chunk index i and vectors[i]. The document
        version row must already exist; writing a chunk index twice for the
        same (card, version, model) is a constraint violation.

        Returns:
            number of rows written
        """
        if len(chunks) != len(vectors):
            raise ValueError(f"Got {len(chunks)} chunks but {len(vectors)} vectors")
        model = model or self.model

        if self.session.get(DocumentVersion, (card_id, version)) is None:
            raise StorageConstraintError(
                f"storing chunks: card {card_id} has no document version {version}"
            )

        rows = []
        for idx, (text, vector) in enumerate(zip(chunks, vectors)):
            if is_blank(text):
                continue
            vec = to_vector(vector)
            if vec.shape != (self.dimensions,):
                raise ValueError(
                    f"Chunk {idx} has dimension {vec.size}, expected {self.dimensions}"
                )
            rows.append({
                "card_id": card_id,
                "ver": version,
                "idx": idx,
                "model": model,
                "text": text,
                "embedding": vec.tobytes(),
            })

        if not rows:
            return 0

        try:
            self.session.execute(insert(Chunk), rows)
        except IntegrityError as e:
            self.session.rollback()
            raise StorageConstraintError(
                f"storing chunks for card {card_id}, version {version}: {e.orig}"
            ) from e

        logger.info(f"Stored {len(rows)} embeddings for card {card_id}, version {version}")
        return len(rows)
