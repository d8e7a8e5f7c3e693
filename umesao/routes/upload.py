from flask import Blueprint, request, jsonify, current_app
from umesao.middleware.config_guard import METHOD_CREDENTIALS, missing_config, require_config
from umesao.routes.cards import card_service

upload_bp = Blueprint("upload", __name__, url_prefix="/api")


@upload_bp.route("/upload", methods=["POST"])
@require_config("OPENAI_API_KEY")
def upload_image():
    f = request.files.get("image")
    if not f or not f.filename:
        return jsonify({"error": "No image uploaded"}), 400

    method = request.form.get("method", current_app.config["DEFAULT_EXTRACTION_METHOD"]).lower()
    if method not in METHOD_CREDENTIALS:
        return jsonify({
            "error": f"invalid method: {method}. Must be one of 'ocr', 'mistral' or 'vision'"
        }), 400

    missing = missing_config(METHOD_CREDENTIALS[method])
    if missing:
        return jsonify({"error": f"Service not configured. Missing: {', '.join(missing)}"}), 503

    result = card_service().upload(f.read(), f.filename, method)
    current_app.logger.info(
        f"Uploaded {f.filename} as card {result.card_id} ({result.stored_count} embeddings)"
    )
    return jsonify({
        "card_id": result.card_id,
        "version": result.version,
        "filename": result.filename,
        "method": result.method,
        "chunk_count": result.chunk_count,
        "stored_count": result.stored_count,
    }), 201


@upload_bp.route("/methods", methods=["GET"])
def get_extraction_methods():
    return jsonify({
        "methods": current_app.config["EXTRACTION_METHODS"],
        "default": current_app.config["DEFAULT_EXTRACTION_METHOD"],
    })
