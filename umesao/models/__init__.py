# Import all models so SQLAlchemy sees them
from umesao.models.card import Card, Image  # noqa
from umesao.models.document_version import DocumentVersion  # noqa
from umesao.models.chunk import Chunk  # noqa
