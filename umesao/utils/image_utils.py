import os
import base64
import uuid
from PIL import Image
from io import BytesIO


def image_object_name(original_filename):
    """Fresh object key that keeps the upload's extension."""
    ext = os.path.splitext(original_filename or "")[1].lower() or ".png"
    return f"{uuid.uuid4().hex}{ext}"


def _open(image_bytes):
    img = Image.open(BytesIO(image_bytes))
    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    return img


def _jpeg_base64(img):
    buf = BytesIO()
    img.save(buf, format="JPEG")
    return base64.b64encode(buf.getvalue()).decode("utf-8")


def image_to_jpeg_base64(image_bytes):
    """Re-encode any Pillow-readable image as base64 JPEG."""
    return _jpeg_base64(_open(image_bytes))


def resize_image_for_vision(image_bytes, max_width=1024, max_height=512):
    """
    Scale a card photo for the vision model. Returns base64 JPEG.
    Landscape images are fitted to max_width, portrait and square ones to max_height.
    """
    img = _open(image_bytes)
    w, h = img.size
    if w > h:
        new_size = (max_width, max(1, int(h * (max_width / w))))
    else:
        new_size = (max(1, int(w * (max_height / h))), max_height)
    img = img.resize(new_size, Image.LANCZOS)
    return _jpeg_base64(img)
