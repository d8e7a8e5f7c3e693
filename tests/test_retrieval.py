import numpy as np
import pytest
from umesao.errors import EmptyCorpusError
from umesao.extensions import db
from umesao.models.card import Card
from umesao.services.retrieval import (
    CARD_BEST,
    CHUNK_FIRST,
    RetrievalRanker,
    SearchResult,
    cosine_distances,
    dedupe_by_card,
)
from tests.conftest import DIMS


def vec(*values):
    v = np.zeros(DIMS, dtype=np.float32)
    v[:len(values)] = values
    return v


QUERY = vec(1.0)


def hit(card_id, distance):
    return SearchResult(card_id=card_id, version=1, idx=0, model="m", text="", distance=distance)


def test_cosine_distances():
    matrix = [vec(2.0), vec(-1.0), vec(0.0, 1.0), vec()]
    np.testing.assert_allclose(cosine_distances(matrix, QUERY), [0.0, 2.0, 1.0, 1.0], atol=1e-7)


def test_dedupe_keeps_first_hit_per_card():
    hits = [hit("A", 0.1), hit("B", 0.2), hit("A", 0.3)]
    results = dedupe_by_card(hits)
    assert [(r.card_id, r.distance) for r in results] == [("A", 0.1), ("B", 0.2)]


def test_search_only_matches_latest_version(app, add_version):
    # Card 1's old version holds the exact match; only its newer version may be searched
    add_version(1, 1, [("old exact match", vec(1.0))])
    add_version(1, 2, [("new unrelated", vec(0.0, 1.0))])
    add_version(2, 1, [("close", vec(1.0, 0.5))])

    results = RetrievalRanker(db.session).search(QUERY, top_k=10)

    assert [r.card_id for r in results] == [2, 1]
    assert results[1].version == 2
    assert results[1].text == "new unrelated"
    assert all(not (r.card_id == 1 and r.version == 1) for r in results)


def test_search_returns_one_result_per_card_with_best_distance(app, add_version):
    add_version(1, 1, [("far", vec(0.0, 1.0)), ("near", vec(1.0, 0.1))])
    add_version(2, 1, [("middle", vec(1.0, 1.0))])

    results = RetrievalRanker(db.session).search(QUERY, top_k=10)

    assert [r.card_id for r in results] == [1, 2]
    assert results[0].text == "near"
    assert results[0].idx == 1
    assert isinstance(results[0].distance, float)
    assert results[0].distance < results[1].distance


def test_chunk_first_cuts_before_dedup(app, add_version):
    add_version(1, 1, [("a0", vec(1.0)), ("a1", vec(1.0, 0.1))])
    add_version(2, 1, [("b0", vec(1.0, 1.0))])

    results = RetrievalRanker(db.session, policy=CHUNK_FIRST).search(QUERY, top_k=2)
    assert [r.card_id for r in results] == [1]


def test_card_best_dedups_before_cut(app, add_version):
    add_version(1, 1, [("a0", vec(1.0)), ("a1", vec(1.0, 0.1))])
    add_version(2, 1, [("b0", vec(1.0, 1.0))])
    add_version(3, 1, [("c0", vec(0.0, 1.0))])

    results = RetrievalRanker(db.session, policy=CARD_BEST).search(QUERY, top_k=2)
    assert [r.card_id for r in results] == [1, 2]


def test_equal_distances_keep_card_and_chunk_order(app, add_version):
    # Inserted out of order; every chunk is equally close to the query
    add_version(2, 1, [("b0", vec(1.0, 1.0))])
    add_version(1, 1, [("a0", vec(1.0, 1.0)), ("a1", vec(1.0, 1.0))])

    ranker = RetrievalRanker(db.session)
    assert [(h.card_id, h.idx) for h in ranker.nearest_chunks(QUERY)] == [(1, 0), (1, 1), (2, 0)]

    for policy in (CHUNK_FIRST, CARD_BEST):
        results = RetrievalRanker(db.session, policy=policy).search(QUERY, top_k=3)
        assert [(r.card_id, r.text) for r in results] == [(1, "a0"), (2, "b0")]


def test_search_ignores_other_models(app, add_version):
    add_version(1, 1, [("other model", vec(1.0))], model="other-model")
    add_version(2, 1, [("our model", vec(0.0, 1.0))])

    results = RetrievalRanker(db.session).search(QUERY, model="text-embedding-3-small")
    assert [r.card_id for r in results] == [2]


def test_empty_corpus(app):
    with pytest.raises(EmptyCorpusError):
        RetrievalRanker(db.session).search(QUERY)


def test_cards_without_versions_are_not_candidates(app):
    db.session.add(Card())
    db.session.commit()
    with pytest.raises(EmptyCorpusError):
        RetrievalRanker(db.session).search(QUERY)


def test_top_k_must_be_positive(app, add_version):
    add_version(1, 1, [("text", vec(1.0))])
    with pytest.raises(ValueError):
        RetrievalRanker(db.session).search(QUERY, top_k=0)


def test_query_dimension_mismatch(app, add_version):
    add_version(1, 1, [("text", vec(1.0))])
    with pytest.raises(ValueError):
        RetrievalRanker(db.session).search(np.ones(DIMS + 2))


def test_unknown_policy():
    with pytest.raises(ValueError):
        RetrievalRanker(None, policy="sum")
