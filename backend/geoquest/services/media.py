from __future__ import annotations
import io
import piexif
from PIL import Image, UnidentifiedImageError

ALLOWED_MIME = {"image/jpeg", "image/png"}
EXT_FOR_MIME = {"image/jpeg": "jpg", "image/png": "png"}
MAX_PHOTO_BYTES = 10 * 1024 * 1024

def sniff_mime(data: bytes) -> str | None:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return Image.MIME.get(img.format or "")
    except (UnidentifiedImageError, OSError):
        return None

def prepare_photo(data: bytes) -> tuple[bytes, str]:
    """
    Check a team upload and return (bytes to store, mime).

    JPEG metadata is dropped before storage: phone cameras embed the GPS fix
    and device details, and photos of kids' tours must not carry them.
    Raises ValueError on anything that is not a sound JPEG/PNG.
    """
    if not data:
        raise ValueError("Empty upload")
    if len(data) > MAX_PHOTO_BYTES:
        raise ValueError("Photo too large (max 10 MB)")
    mime = sniff_mime(data)
    if mime not in ALLOWED_MIME:
        raise ValueError("Unsupported image type, use JPEG or PNG")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise ValueError("Invalid image file")

    if mime == "image/jpeg":
        out = io.BytesIO()
        try:
            piexif.remove(data, out)
        except ValueError:
            raise ValueError("Invalid image file")
        data = out.getvalue()
    return data, mime

def ext_for_mime(mime: str) -> str:
    return EXT_FOR_MIME.get(mime, "bin")
