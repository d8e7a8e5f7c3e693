"""
Split extracted card text into retrievable fragments.

Chunk 0 is always the whole document. The structural method walks the
CommonMark token stream and emits every heading plus every sentence of every
paragraph, in document order. The flat method ignores markdown and splits
the whole text into sentences.
"""
import re
from markdown_it import MarkdownIt

STRUCTURAL = "structural"
FLAT = "flat"
METHODS = (STRUCTURAL, FLAT)

# ASCII and full-width Japanese sentence delimiters
SENTENCE_DELIMITERS = re.compile(r"[.!?。！？]")

# CommonMark: "#word" is not a heading and a list may interrupt a paragraph
_parser = MarkdownIt("commonmark")


def split_sentences(text):
    """Split on sentence delimiters, trim each piece and drop the empty ones."""
    sentences = []
    for piece in SENTENCE_DELIMITERS.split(text):
        piece = piece.strip()
        if piece:
            sentences.append(piece)
    return sentences


def chunk_method_for(extraction_method):
    """OCR output is reconstructed as markdown; vision captions are plain prose."""
    if extraction_method == "vision":
        return FLAT
    return STRUCTURAL


def _flatten(tokens):
    """Plain text of inline tokens: emphasis, links and image alt text flattened."""
    parts = []
    for token in tokens:
        if token.type in ("text", "code_inline"):
            parts.append(token.content)
        elif token.type in ("softbreak", "hardbreak"):
            parts.append("\n")
        elif token.children:
            parts.append(_flatten(token.children))
    return "".join(parts)


def _structural_fragments(content):
    tokens = _parser.parse(content)

    fragments = []
    for opener, inline in zip(tokens, tokens[1:]):
        if inline.type != "inline":
            continue
        if opener.type == "heading_open":
            heading = _flatten(inline.children or []).strip()
            if heading:
                fragments.append(heading)
        # Paragraphs of tight list items are hidden; they are list text, not prose
        elif opener.type == "paragraph_open" and not opener.hidden:
            fragments.extend(split_sentences(_flatten(inline.children or [])))
    return fragments


def extract_chunks(content, method=STRUCTURAL):
    """
    Return the ordered chunk list for a document.

    Args:
        content: raw extracted text, markdown or plain
        method: STRUCTURAL or FLAT

    Returns:
        list of strings, chunks[0] being the whole content
    """
    if method not in METHODS:
        raise ValueError(f"Unknown chunking method: {method}. Use 'structural' or 'flat'")

    chunks = [content]
    if method == STRUCTURAL:
        chunks.extend(_structural_fragments(content))
    else:
        chunks.extend(split_sentences(content))
    return chunks


def is_blank(text):
    return not text or not text.strip()
