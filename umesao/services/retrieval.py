"""
Nearest-neighbour search over the latest version of every card.

Only chunks whose (card_id, ver) is the card's maximum version are
candidates. Candidates are ranked by cosine distance and collapsed to one
result per card, keeping that card's closest chunk.

Two ranking policies are available:

  chunk_first  cut the global chunk ranking at top_k, then keep the first
               hit per card. A card whose chunks all fall outside the
               top_k chunks is not returned even if it is a near match.
  card_best    collapse every candidate to its card's best distance first,
               then cut at top_k cards.
"""
import logging
from dataclasses import dataclass, asdict
import numpy as np
from sqlalchemy import and_, func, select
from umesao.errors import EmptyCorpusError
from umesao.models.chunk import Chunk
from umesao.models.document_version import DocumentVersion

logger = logging.getLogger(__name__)

CHUNK_FIRST = "chunk_first"
CARD_BEST = "card_best"
RANKING_POLICIES = (CHUNK_FIRST, CARD_BEST)


@dataclass
class SearchResult:
    card_id: int
    version: int
    idx: int
    model: str
    text: str
    distance: float

    def to_dict(self):
        return asdict(self)


def cosine_distances(matrix, query):
    """
    1 - cosine similarity of every row against query.

    0 means same orientation, 2 opposite. Zero-length vectors have no
    orientation and sit at distance 1 from everything.
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    query = np.asarray(query, dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        similarity = np.where(norms > 0, dots / norms, 0.0)
    return np.clip(1.0 - similarity, 0.0, 2.0)


def dedupe_by_card(hits):
    """Keep the first (closest) hit per card, preserving order."""
    seen = set()
    results = []
    for hit in hits:
        if hit.card_id in seen:
            continue
        seen.add(hit.card_id)
        results.append(hit)
    return results


class RetrievalRanker:
    def __init__(self, session, policy=CHUNK_FIRST):
        if policy not in RANKING_POLICIES:
            raise ValueError(f"Unknown ranking policy: {policy}. Use 'chunk_first' or 'card_best'")
        self.session = session
        self.policy = policy

    def latest_versions(self):
        """Subquery of (card_id, max_ver); cards without any version never appear."""
        return (
            select(DocumentVersion.card_id, func.max(DocumentVersion.ver).label("max_ver"))
            .group_by(DocumentVersion.card_id)
            .subquery()
        )

    def candidate_chunks(self, model=None):
        latest = self.latest_versions()
        stmt = (
            select(Chunk)
            .join(latest, and_(Chunk.card_id == latest.c.card_id, Chunk.ver == latest.c.max_ver))
            .order_by(Chunk.card_id, Chunk.ver, Chunk.model, Chunk.idx)
        )
        if model:
            stmt = stmt.where(Chunk.model == model)
        return self.session.execute(stmt).scalars().all()

    def nearest_chunks(self, query_vector, model=None):
        """All latest-version chunks ordered by ascending distance; ties keep scan order."""
        candidates = self.candidate_chunks(model=model)
        if not candidates:
            raise EmptyCorpusError("no chunks found in database. Please upload content first")

        query = np.asarray(query_vector, dtype=np.float32)
        matrix = np.vstack([c.vector for c in candidates])
        if matrix.shape[1] != query.shape[0]:
            raise ValueError(
                f"Query vector has dimension {query.shape[0]}, stored vectors have {matrix.shape[1]}"
            )

        distances = cosine_distances(matrix, query)
        order = np.argsort(distances, kind="stable")
        return [
            SearchResult(
                card_id=candidates[i].card_id,
                version=candidates[i].ver,
                idx=candidates[i].idx,
                model=candidates[i].model,
                text=candidates[i].text,
                distance=float(distances[i]),
            )
            for i in order
        ]

    def search(self, query_vector, top_k=10, model=None):
        """
        Rank cards against a query vector.

        Returns:
            at most top_k SearchResult, one per card, closest first
        """
        if top_k < 1:
            raise ValueError("top_k must be at least 1")

        hits = self.nearest_chunks(query_vector, model=model)
        if self.policy == CHUNK_FIRST:
            results = dedupe_by_card(hits[:top_k])
        else:
            results = dedupe_by_card(hits)[:top_k]

        logger.debug(f"Search ({self.policy}) matched {len(results)} cards from {len(hits)} chunks")
        return results
