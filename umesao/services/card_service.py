"""
Card lifecycle: upload, versioned edits, lookup and cascading delete.

Every collaborator (database session, object store, embedding store,
ranker, text extractors) is handed in explicitly; CardService.from_config
wires the production ones from an application config mapping.
"""
import logging
from dataclasses import dataclass, field
from functools import partial
from sqlalchemy import func, insert, select
from sqlalchemy.exc import IntegrityError
from umesao.errors import InvalidContentError, NotFoundError, StorageConstraintError, UmesaoError
from umesao.models.card import Card, Image
from umesao.models.document_version import DocumentVersion
from umesao.services.chunker import STRUCTURAL, chunk_method_for, extract_chunks
from umesao.services.embedding_service import EmbeddingStore
from umesao.services.extraction import create_extractor
from umesao.services.object_store import create_object_store, guess_content_type, markdown_key
from umesao.services.openai_service import OpenAIService
from umesao.services.retrieval import RetrievalRanker
from umesao.services.versioning import content_hash, next_version, should_create_new_version
from umesao.utils.image_utils import image_object_name

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    card_id: int
    version: int
    filename: str
    method: str
    chunk_count: int
    stored_count: int


@dataclass
class EditResult:
    card_id: int
    version: int
    changed: bool
    stored_count: int = 0


@dataclass
class DeleteResult:
    card_id: int
    deleted_blobs: list = field(default_factory=list)
    failed_blobs: list = field(default_factory=list)


@dataclass
class CardView:
    card_id: int
    version: int
    markdown: str
    image_url: str = None
    language: str = None


def _as_bytes(content):
    if isinstance(content, str):
        return content.encode("utf-8")
    return bytes(content)


class CardService:
    def __init__(self, session, store, embeddings, ranker, extractor_factory=None, translator=None,
                 image_bucket="card-images", markdown_bucket="card-markdown", top_k=10):
        self.session = session
        self.store = store
        self.embeddings = embeddings
        self.ranker = ranker
        self.extractor_factory = extractor_factory
        self.translator = translator
        self.image_bucket = image_bucket
        self.markdown_bucket = markdown_bucket
        self.top_k = top_k

    @classmethod
    def from_config(cls, config, session):
        openai = OpenAIService(config)
        embeddings = EmbeddingStore(
            session,
            provider=openai,
            model=config["EMBEDDING_MODEL"],
            dimensions=config["EMBEDDING_DIMENSIONS"],
        )
        return cls(
            session=session,
            store=create_object_store(config),
            embeddings=embeddings,
            ranker=RetrievalRanker(session, policy=config.get("RANKING_POLICY", "chunk_first")),
            extractor_factory=partial(create_extractor, config=config, openai=openai),
            translator=openai,
            image_bucket=config["IMAGE_BUCKET"],
            markdown_bucket=config["MARKDOWN_BUCKET"],
            top_k=config.get("SEARCH_TOP_K", 10),
        )

    # --- Queries ---

    def list_cards(self):
        return self.session.execute(select(Card).order_by(Card.id)).scalars().all()

    def get_card(self, card_id):
        card = self.session.get(Card, card_id)
        if card is None:
            raise NotFoundError(f"card {card_id} not found")
        return card

    def get_latest_version(self, card_id):
        latest = self.session.execute(
            select(func.max(DocumentVersion.ver)).where(DocumentVersion.card_id == card_id)
        ).scalar()
        if latest is None:
            raise NotFoundError(f"card {card_id} has no markdown version")
        return latest

    def get_card_image(self, card_id):
        image = self.session.execute(
            select(Image).where(Image.card_id == card_id).order_by(Image.created_at)
        ).scalars().first()
        if image is None:
            raise NotFoundError(f"card {card_id} has no image")
        return image

    def image_url(self, card_id):
        """URL of the card photo, or None for a card without one."""
        try:
            image = self.get_card_image(card_id)
        except NotFoundError:
            return None
        return self.store.url(self.image_bucket, image.filename)

    def get_markdown(self, card_id, version=None):
        if version is None:
            version = self.get_latest_version(card_id)
        elif self.session.get(DocumentVersion, (card_id, version)) is None:
            raise NotFoundError(f"card {card_id} has no markdown version {version}")
        data = self.store.get(self.markdown_bucket, markdown_key(card_id, version))
        return data.decode("utf-8")

    def chunk_method(self, card_id):
        """Chunking follows the extraction method recorded on the card's image."""
        try:
            return chunk_method_for(self.get_card_image(card_id).method)
        except NotFoundError:
            return STRUCTURAL

    # --- Lifecycle steps ---

    def create_card(self):
        """Allocate a new card id. Nothing else is created. Does not commit."""
        card = Card()
        self.session.add(card)
        self.session.flush()
        logger.info(f"Created new card with ID: {card.id}")
        return card.id

    def attach_image(self, card_id, image_bytes, original_filename, method):
        """Upload the image blob and associate it with the card. Does not commit."""
        filename = image_object_name(original_filename)
        self.store.put(self.image_bucket, filename, image_bytes, guess_content_type(filename))
        self.session.add(Image(card_id=card_id, filename=filename, method=method))
        self.session.flush()
        logger.info(f"Associated image {filename} with card {card_id}")
        return filename

    def write_version(self, card_id, version, content, method=STRUCTURAL):
        """
        Store one document version: version row, chunk rows, markdown blob.

        Embeddings are computed before anything is written. The version row
        precedes its chunk rows; a version number that already exists is a
        StorageConstraintError. Does not commit.

        Returns:
            (chunks, stored_count)
        """
        data = _as_bytes(content)
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidContentError(f"card {card_id}: content is not valid UTF-8") from e

        chunks = extract_chunks(text, method)
        logger.info(f"Extracted {len(chunks)} chunks from content")
        vectors = self.embeddings.embed_chunks(chunks)

        try:
            self.session.execute(
                insert(DocumentVersion).values(card_id=card_id, ver=version, hash=content_hash(data))
            )
        except IntegrityError as e:
            self.session.rollback()
            raise StorageConstraintError(
                f"storing markdown version {version} for card {card_id}: {e.orig}"
            ) from e

        stored = self.embeddings.store(card_id, version, chunks, vectors)
        self.store.put(self.markdown_bucket, markdown_key(card_id, version), data, "text/markdown")
        logger.info(f"Stored markdown for card {card_id}, version {version}")
        return chunks, stored

    # --- Pipelines ---

    def upload(self, image_bytes, original_filename, method):
        """Extract text from a card photo and store it as a new card at version 1."""
        extractor = self.extractor_factory(method)
        content = extractor.extract(image_bytes)

        try:
            card_id = self.create_card()
            filename = self.attach_image(card_id, image_bytes, original_filename, extractor.method)
            version = next_version(None)
            chunks, stored = self.write_version(card_id, version, content, chunk_method_for(extractor.method))
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        return UploadResult(
            card_id=card_id,
            version=version,
            filename=filename,
            method=extractor.method,
            chunk_count=len(chunks),
            stored_count=stored,
        )

    def edit(self, card_id, new_content):
        """
        Store edited markdown as the next version.

        Byte-identical content is a no-op: no version, no embeddings.
        Older versions and their chunks are left untouched.
        """
        latest = self.get_latest_version(card_id)
        old_content = self.store.get(self.markdown_bucket, markdown_key(card_id, latest))
        _, changed = should_create_new_version(content_hash(old_content), _as_bytes(new_content))

        if not changed:
            logger.info(f"No changes detected for card {card_id}")
            return EditResult(card_id=card_id, version=latest, changed=False)

        version = next_version(latest)
        try:
            _, stored = self.write_version(card_id, version, new_content, self.chunk_method(card_id))
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(f"Stored {stored} embeddings for card {card_id}, version {version}")
        return EditResult(card_id=card_id, version=version, changed=True, stored_count=stored)

    def delete(self, card_id):
        """
        Delete a card in two phases.

        The database delete (cascading to images, versions and chunks) is
        authoritative. Blob removal afterwards is best effort: failures are
        logged and reported, never raised.
        """
        card = self.get_card(card_id)
        blobs = [(self.image_bucket, image.filename) for image in card.images]
        blobs += [(self.markdown_bucket, markdown_key(card_id, v.ver)) for v in card.versions]

        self.session.delete(card)
        self.session.commit()
        logger.info(f"Deleted card {card_id} from the database")

        result = DeleteResult(card_id=card_id)
        for bucket, key in blobs:
            try:
                self.store.delete(bucket, key)
                result.deleted_blobs.append(f"{bucket}/{key}")
            except (UmesaoError, OSError) as e:
                logger.warning(f"Failed to delete {bucket}/{key} for card {card_id}: {e}")
                result.failed_blobs.append(f"{bucket}/{key}")
        return result

    def lookup(self, query, top_k=None):
        query_vector = self.embeddings.embed_query(query)
        return self.ranker.search(query_vector, top_k=top_k or self.top_k, model=self.embeddings.model)

    def show(self, card_id, version=None, language=None):
        """Markdown (optionally translated) plus the image URL for a card."""
        if version is None:
            version = self.get_latest_version(card_id)
        markdown = self.get_markdown(card_id, version)

        image_url = self.image_url(card_id)
        if language:
            markdown = self.translator.translate(markdown, language)
        return CardView(card_id=card_id, version=version, markdown=markdown,
                        image_url=image_url, language=language)

    def dryrun(self, content, method=STRUCTURAL):
        """Chunk and embed content without writing anything."""
        chunks = extract_chunks(content, method)
        vectors = self.embeddings.embed_chunks(chunks)
        return list(zip(chunks, vectors))
