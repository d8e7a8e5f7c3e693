import hashlib
import numpy as np
import pytest
from config import Config
from umesao import create_app
from umesao.extensions import db
from umesao.models.card import Card
from umesao.models.chunk import Chunk
from umesao.models.document_version import DocumentVersion
from umesao.services.card_service import CardService
from umesao.services.openai_service import OpenAIService
from umesao.services.versioning import content_hash

DIMS = 8


class TestingConfig(Config):
    __test__ = False
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    OPENAI_API_KEY = "test-key"
    OPENAI_BASE_URL = "https://api.openai.test/v1"
    TRANSLATION_MODEL = "gpt-4o"
    OCR_MARKDOWN_MODEL = "o1-mini"
    VISION_MODEL = "gpt-4o-mini"
    OCR_LANGUAGE = "ja"
    DEFAULT_EXTRACTION_METHOD = "ocr"
    EDITOR = "nvim"
    AZURE_ENDPOINT = "https://azure.test"
    AZURE_KEY = "azure-key"
    MISTRAL_API_KEY = "mistral-key"
    EMBEDDING_MODEL = "text-embedding-3-small"
    EMBEDDING_DIMENSIONS = DIMS
    OCR_POLL_INTERVAL = 0
    STORAGE_BACKEND = "local"
    RANKING_POLICY = "chunk_first"
    SEARCH_TOP_K = 10


class FakeEmbeddingProvider:
    """Deterministic stand-in for the embeddings API. Pin vectors through `fixed`."""

    def __init__(self, dimensions=DIMS):
        self.dimensions = dimensions
        self.fixed = {}
        self.calls = []

    def vector_for(self, text):
        if text in self.fixed:
            return list(self.fixed[text])
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [b / 255.0 - 0.5 for b in digest[:self.dimensions]]

    def embeddings(self, texts, model=None, dimensions=None):
        self.calls.append(list(texts))
        return [self.vector_for(t) for t in texts]


class FakeExtractor:
    def __init__(self, method, text):
        self.method = method
        self.text = text
        self.seen = []

    def extract(self, image_bytes):
        self.seen.append(image_bytes)
        return self.text


@pytest.fixture
def app(tmp_path):
    class _Config(TestingConfig):
        STORAGE_FOLDER = str(tmp_path / "storage")

    app = create_app(_Config)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def embedder(monkeypatch):
    provider = FakeEmbeddingProvider()

    def fake_embeddings(self, texts, model=None, dimensions=None):
        return provider.embeddings(texts, model=model, dimensions=dimensions)

    monkeypatch.setattr(OpenAIService, "embeddings", fake_embeddings)
    return provider


@pytest.fixture
def extracted_text(monkeypatch):
    """Replace every extraction backend with one returning the text set on the fixture."""
    state = {"text": "# Title\nHello world. Nice day!", "extractors": []}

    def fake_create_extractor(method, config, openai):
        extractor = FakeExtractor(method or config["DEFAULT_EXTRACTION_METHOD"], state["text"])
        state["extractors"].append(extractor)
        return extractor

    monkeypatch.setattr("umesao.services.card_service.create_extractor", fake_create_extractor)
    return state


@pytest.fixture
def service(app, embedder, extracted_text):
    return CardService.from_config(app.config, db.session)


@pytest.fixture
def add_version(app):
    """Insert a card version with chunk vectors directly, bypassing the pipeline."""

    def _add(card_id, ver, chunks, model="text-embedding-3-small"):
        if db.session.get(Card, card_id) is None:
            db.session.add(Card(id=card_id))
        db.session.add(DocumentVersion(card_id=card_id, ver=ver, hash=content_hash(f"{card_id}-{ver}")))
        db.session.flush()
        for idx, (text, vector) in enumerate(chunks):
            db.session.add(Chunk(
                card_id=card_id,
                ver=ver,
                idx=idx,
                model=model,
                text=text,
                embedding=np.asarray(vector, dtype=np.float32).tobytes(),
            ))
        db.session.commit()

    return _add
