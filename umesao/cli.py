"""
`ume` command line: upload, edit, delete, lookup and show cards.

The commands are registered on the application's CLI by create_app, so
they are reachable through `flask --app umesao ...` as well as `ume ...`.
"""
import os
import tempfile
from functools import wraps
import click
from flask import current_app
from flask.cli import FlaskGroup, with_appcontext
from umesao.errors import UmesaoError
from umesao.extensions import db
from umesao.routes.pages import render_card
from umesao.services.card_service import CardService
from umesao.services.chunker import METHODS as CHUNK_METHODS, STRUCTURAL
from umesao.services.extraction import EXTRACTION_METHODS


def _service():
    return CardService.from_config(current_app.config, db.session)


def handle_errors(f):
    """Report pipeline errors as a one-line message and exit code 1."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except UmesaoError as e:
            raise click.ClickException(str(e)) from e
    return decorated_function


@click.command("upload")
@click.option("--method", "-m", type=click.Choice(EXTRACTION_METHODS), default=None,
              help="Text extraction method (default: DEFAULT_EXTRACTION_METHOD).")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@with_appcontext
@handle_errors
def upload_command(method, path):
    """Upload a card photo and index its text."""
    method = method or current_app.config["DEFAULT_EXTRACTION_METHOD"]
    with open(path, "rb") as f:
        image_bytes = f.read()

    click.echo(f"Extracting text from {os.path.basename(path)} using {method}...")
    result = _service().upload(image_bytes, os.path.basename(path), method)
    click.echo(
        f"Card {result.card_id} created: {result.chunk_count} chunks, "
        f"{result.stored_count} embeddings stored"
    )


@click.command("edit")
@click.option("--verbose", "-v", is_flag=True, help="Print the saved markdown.")
@click.option("--no-image", is_flag=True, help="Do not open the card photo while editing.")
@click.argument("card_id", type=int)
@with_appcontext
@handle_errors
def edit_command(verbose, no_image, card_id):
    """Edit the latest markdown of a card in $EDITOR, next to its photo."""
    service = _service()
    latest = service.get_latest_version(card_id)
    original = service.get_markdown(card_id, latest)

    image_url = None if no_image else service.image_url(card_id)
    if image_url and click.launch(image_url) != 0:
        click.echo(f"Note: could not open the image at {image_url}")

    fd, path = tempfile.mkstemp(prefix=f"card_{card_id}_", suffix=".md")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(original)
        click.edit(filename=path, editor=current_app.config["EDITOR"])
        with open(path, "rb") as f:
            edited = f.read()
    finally:
        os.remove(path)

    result = service.edit(card_id, edited)
    if not result.changed:
        click.echo("No changes detected. Skipping upload.")
        return

    if verbose:
        click.echo(edited.decode("utf-8"))
    click.echo(
        f"Card {card_id} saved as version {result.version} "
        f"({result.stored_count} embeddings stored)"
    )


@click.command("delete")
@click.option("--quiet", "-q", is_flag=True, help="Do not ask for confirmation or report progress.")
@click.argument("card_id", type=int)
@with_appcontext
@handle_errors
def delete_command(quiet, card_id):
    """Delete a card with its images, versions and chunks."""
    service = _service()
    card = service.get_card(card_id)

    if not quiet:
        click.echo(
            f"Card {card_id}: {len(card.images)} image(s), {len(card.versions)} markdown version(s)"
        )
        click.confirm("Are you sure you want to delete this card?", abort=True)

    result = service.delete(card_id)
    if result.failed_blobs:
        click.echo(f"Warning: could not remove {', '.join(result.failed_blobs)}", err=True)
    if not quiet:
        click.echo(f"Card {card_id} deleted")


@click.command("lookup")
@click.option("--top-k", "-k", type=click.IntRange(min=1), default=None,
              help="Number of chunk hits considered (default: SEARCH_TOP_K).")
@click.argument("query", nargs=-1, required=True)
@with_appcontext
@handle_errors
def lookup_command(top_k, query):
    """Find the cards closest to a free-text query."""
    query = " ".join(query)
    click.echo(f'Searching for: "{query}"')

    results = _service().lookup(query, top_k=top_k)
    for r in results:
        click.echo(f"Card {r.card_id} (version {r.version}) distance: {r.distance:.4f}")
        click.echo(f"  {r.text[:200]}")


@click.command("show")
@click.option("--version", "-v", type=int, default=None, help="Markdown version (default: latest).")
@click.option("--lang", "-l", default=None, help="Translate the markdown to this language.")
@click.argument("card_id", type=int)
@with_appcontext
@handle_errors
def show_command(version, lang, card_id):
    """Open a card (photo and markdown) in the browser."""
    view = _service().show(card_id, version=version, language=lang)
    html = render_card(view)

    fd, path = tempfile.mkstemp(prefix=f"card_{card_id}_", suffix=".html")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(html)
        click.launch(path)
        click.echo(f"Opened card {card_id} in browser.")
        click.pause("Press any key to close...")
    finally:
        os.remove(path)


@click.command("download")
@click.option("--version", "-v", type=int, default=None, help="Markdown version (default: latest).")
@click.option("--output", "-o", type=click.Path(dir_okay=False, writable=True), default=None,
              help="Write to this file instead of stdout.")
@click.argument("card_id", type=int)
@with_appcontext
@handle_errors
def download_command(version, output, card_id):
    """Print or save the markdown of a card."""
    content = _service().get_markdown(card_id, version)
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(content)
        click.echo(f"Saved card {card_id} markdown to {output}")
    else:
        click.echo(content)


@click.command("dryrun")
@click.option("--method", "-m", type=click.Choice(CHUNK_METHODS), default=STRUCTURAL,
              help="Chunking method.")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@with_appcontext
@handle_errors
def dryrun_command(method, path):
    """Chunk and embed a markdown file without storing anything."""
    with open(path, encoding="utf-8") as f:
        content = f.read()

    pairs = _service().dryrun(content, method)
    click.echo(f"Extracted {len(pairs)} chunks")
    for idx, (chunk, vector) in enumerate(pairs):
        click.echo(f"[{idx}] {chunk[:80]!r}")
        if vector is None:
            click.echo("    (blank, not embedded)")
        else:
            head = ", ".join(f"{v:.4f}" for v in vector[:5])
            click.echo(f"    [{head}, ...] ({len(vector)} dims)")


@click.command("init-db")
@with_appcontext
def init_db_command():
    """Create the database tables."""
    db.create_all()
    click.echo("Initialized the database.")


COMMANDS = [
    upload_command,
    edit_command,
    delete_command,
    lookup_command,
    show_command,
    download_command,
    dryrun_command,
    init_db_command,
]


def register_commands(app):
    for command in COMMANDS:
        app.cli.add_command(command)


def _create_app():
    from umesao import create_app
    return create_app()


class LookupGroup(FlaskGroup):
    """`ume <query>` is short for `ume lookup <query>`."""

    def resolve_command(self, ctx, args):
        name = args[0] if args else None
        if name and not name.startswith("-") and self.get_command(ctx, name) is None:
            args = ["lookup", *args]
        return super().resolve_command(ctx, args)


@click.group(cls=LookupGroup, create_app=_create_app)
def cli():
    """Personal knowledge-card pipeline."""
