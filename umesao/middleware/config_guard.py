from functools import wraps
from flask import current_app, jsonify

# Credentials each extraction method needs besides OPENAI_API_KEY
METHOD_CREDENTIALS = {
    "ocr": ("AZURE_ENDPOINT", "AZURE_KEY"),
    "mistral": ("MISTRAL_API_KEY",),
    "vision": (),
}


def missing_config(keys):
    return [key for key in keys if not current_app.config.get(key)]


def require_config(*keys):
    """Decorator to refuse an endpoint with 503 until its credentials are configured."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            missing = missing_config(keys)
            if missing:
                return jsonify({
                    "error": f"Service not configured. Missing: {', '.join(missing)}"
                }), 503
            return f(*args, **kwargs)
        return decorated_function
    return decorator
