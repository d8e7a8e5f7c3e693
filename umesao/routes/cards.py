from flask import Blueprint, request, jsonify, current_app
from umesao.extensions import db
from umesao.services.card_service import CardService

cards_bp = Blueprint("cards", __name__, url_prefix="/api")


def card_service():
    return CardService.from_config(current_app.config, db.session)


@cards_bp.route("/cards", methods=["GET"])
def list_cards():
    cards = card_service().list_cards()
    return jsonify({
        "cards": [c.to_dict() for c in cards],
        "total": len(cards),
    })


@cards_bp.route("/cards/<int:card_id>", methods=["GET"])
def get_card(card_id):
    card = card_service().get_card(card_id)
    return jsonify(card.to_dict())


@cards_bp.route("/cards/<int:card_id>/markdown", methods=["GET"])
def get_markdown(card_id):
    service = card_service()
    version = request.args.get("version", type=int)
    if version is None:
        version = service.get_latest_version(card_id)
    return jsonify({
        "card_id": card_id,
        "version": version,
        "markdown": service.get_markdown(card_id, version),
    })


@cards_bp.route("/cards/<int:card_id>/markdown", methods=["PUT"])
def edit_markdown(card_id):
    # JSON {"markdown": ...} or the raw markdown as the request body
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        content = data.get("markdown")
    else:
        content = request.get_data() or None
    if content is None:
        return jsonify({"error": "No markdown provided"}), 400

    result = card_service().edit(card_id, content)
    return jsonify({
        "card_id": result.card_id,
        "version": result.version,
        "changed": result.changed,
        "stored_count": result.stored_count,
    })


@cards_bp.route("/cards/<int:card_id>", methods=["DELETE"])
def delete_card(card_id):
    result = card_service().delete(card_id)
    return jsonify({
        "message": "Card deleted",
        "card_id": result.card_id,
        "failed_blobs": result.failed_blobs,
    })
