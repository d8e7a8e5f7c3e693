from flask import jsonify


class UmesaoError(Exception):
    """Base class for card pipeline errors."""

    status_code = 500


class ConfigurationError(UmesaoError):
    """A required credential or endpoint is not configured."""

    status_code = 503


class NotFoundError(UmesaoError):
    status_code = 404


class ExternalServiceError(UmesaoError):
    """Non-2xx or malformed response from OCR, embedding or translation providers."""

    status_code = 502


class RetryExhaustedError(ExternalServiceError):
    """OCR result polling ran out of attempts."""


class StorageConstraintError(UmesaoError):
    """Uniqueness or foreign-key violation in the relational store."""

    status_code = 409


class EmptyCorpusError(UmesaoError):
    """Search attempted before any chunk was stored."""

    status_code = 404


class InvalidContentError(UmesaoError, ValueError):
    """Card content that cannot be decoded as UTF-8 text."""

    status_code = 400


def register_error_handlers(app):
    @app.errorhandler(UmesaoError)
    def handle_umesao_error(error):
        if error.status_code >= 500:
            app.logger.error(f"{type(error).__name__}: {error}")
        return jsonify({"error": str(error)}), error.status_code
