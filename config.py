import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default):
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///umesao.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    MAX_CONTENT_LENGTH = 32 * 1024 * 1024  # 32 MB max upload

    # OpenAI (chat, vision, embeddings, translation)
    OPENAI_API_KEY = os.getenv("OPENAI_KEY", "")
    OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    TRANSLATION_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")
    OCR_MARKDOWN_MODEL = os.getenv("OCR_MARKDOWN_MODEL", "o1-mini")
    VISION_MODEL = os.getenv("VISION_MODEL", "gpt-4o-mini")
    EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    EMBEDDING_DIMENSIONS = int(os.getenv("EMBEDDING_DIMENSIONS", "1536"))

    # Azure Read API
    AZURE_ENDPOINT = os.getenv("AZURE_ENDPOINT", "")
    AZURE_KEY = os.getenv("AZURE_KEY", "")
    OCR_LANGUAGE = os.getenv("OCR_LANGUAGE", "ja")
    OCR_POLL_INTERVAL = float(os.getenv("OCR_POLL_INTERVAL", "3"))
    OCR_POLL_ATTEMPTS = int(os.getenv("OCR_POLL_ATTEMPTS", "3"))

    # Mistral OCR
    MISTRAL_API_KEY = os.getenv("MISTRAL_KEY", "")
    MISTRAL_OCR_URL = os.getenv("MISTRAL_OCR_URL", "https://api.mistral.ai/v1/ocr")

    # Object storage: "local" keeps blobs on disk, "s3" talks to MinIO or any S3 endpoint
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local")
    STORAGE_FOLDER = os.getenv(
        "STORAGE_FOLDER", os.path.join(os.path.dirname(os.path.abspath(__file__)), "storage")
    )
    S3_ENDPOINT = os.getenv("MINIO_ENDPOINT", "")
    S3_ACCESS_KEY = os.getenv("MINIO_USER", "")
    S3_SECRET_KEY = os.getenv("MINIO_PASSWORD", "")
    S3_SECURE = _env_bool("S3_SECURE", True)
    IMAGE_BUCKET = os.getenv("IMAGE_BUCKET", "card-images")
    MARKDOWN_BUCKET = os.getenv("MARKDOWN_BUCKET", "card-markdown")

    # Retrieval
    SEARCH_TOP_K = int(os.getenv("SEARCH_TOP_K", "10"))
    RANKING_POLICY = os.getenv("RANKING_POLICY", "chunk_first")

    # Seconds, applied to every outbound HTTP call
    HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "120"))

    EDITOR = os.getenv("EDITOR", "nvim")

    # Extraction methods offered on upload
    EXTRACTION_METHODS = [
        {"id": "ocr", "name": "Azure Read OCR (Default)"},
        {"id": "mistral", "name": "Mistral OCR"},
        {"id": "vision", "name": "Vision caption"},
    ]
    DEFAULT_EXTRACTION_METHOD = "ocr"
