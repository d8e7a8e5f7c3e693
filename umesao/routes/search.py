from flask import Blueprint, request, jsonify
from umesao.middleware.config_guard import require_config
from umesao.routes.cards import card_service

search_bp = Blueprint("search", __name__, url_prefix="/api")


@search_bp.route("/search", methods=["GET"])
@require_config("OPENAI_API_KEY")
def search_cards():
    query = request.args.get("q", "").strip()
    if not query:
        return jsonify({"error": "Query is required"}), 400

    top_k = request.args.get("top_k", type=int)
    if top_k is not None and top_k < 1:
        return jsonify({"error": "top_k must be at least 1"}), 400

    results = card_service().lookup(query, top_k=top_k)
    return jsonify({
        "query": query,
        "results": [r.to_dict() for r in results],
    })
