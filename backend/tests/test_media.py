import io
import piexif
import pytest
from PIL import Image
from geoquest.services.media import prepare_photo, ext_for_mime, sniff_mime

def jpeg_with_gps() -> bytes:
    exif = piexif.dump({
        "0th": {piexif.ImageIFD.Make: b"PhoneCo"},
        "GPS": {piexif.GPSIFD.GPSLatitudeRef: b"N", piexif.GPSIFD.GPSLatitude: ((52, 1), (22, 1), (23, 1))},
    })
    buf = io.BytesIO()
    Image.new("RGB", (32, 32), (10, 120, 40)).save(buf, "JPEG", exif=exif)
    return buf.getvalue()

def test_jpeg_metadata_is_stripped():
    raw = jpeg_with_gps()
    assert piexif.load(raw)["GPS"]
    clean, mime = prepare_photo(raw)
    assert mime == "image/jpeg"
    with Image.open(io.BytesIO(clean)) as img:
        assert img.size == (32, 32)
        assert "exif" not in img.info

def test_png_passes_through():
    buf = io.BytesIO()
    Image.new("RGB", (8, 8)).save(buf, "PNG")
    data, mime = prepare_photo(buf.getvalue())
    assert mime == "image/png"
    assert data == buf.getvalue()
    assert ext_for_mime(mime) == "png"

def test_rejects_other_formats():
    buf = io.BytesIO()
    Image.new("RGB", (8, 8)).save(buf, "GIF")
    assert sniff_mime(buf.getvalue()) == "image/gif"
    with pytest.raises(ValueError):
        prepare_photo(buf.getvalue())
    with pytest.raises(ValueError):
        prepare_photo(b"")
    with pytest.raises(ValueError):
        prepare_photo(b"plain text")
