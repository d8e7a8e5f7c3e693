import os
import markdown
from flask import Blueprint, render_template, request, send_from_directory, current_app, url_for
from umesao.routes.cards import card_service

pages_bp = Blueprint("pages", __name__)


def render_card(view, image_src=None):
    """Card page: the photo next to its rendered markdown."""
    body = markdown.markdown(view.markdown, extensions=["tables", "fenced_code"])
    return render_template(
        "card.html",
        card_id=view.card_id,
        version=view.version,
        language=view.language,
        image_src=image_src if image_src is not None else view.image_url,
        body=body,
    )


@pages_bp.route("/")
def index():
    return render_template("index.html", cards=card_service().list_cards())


@pages_bp.route("/cards/<int:card_id>")
def card_page(card_id):
    service = card_service()
    view = service.show(
        card_id,
        version=request.args.get("version", type=int),
        language=request.args.get("lang") or None,
    )

    image_src = None
    if view.image_url and current_app.config["STORAGE_BACKEND"] == "local":
        image_src = url_for("pages.serve_image", filename=service.get_card_image(card_id).filename)
    return render_card(view, image_src)


@pages_bp.route("/images/<path:filename>")
def serve_image(filename):
    folder = os.path.join(current_app.config["STORAGE_FOLDER"], current_app.config["IMAGE_BUCKET"])
    return send_from_directory(folder, filename)
