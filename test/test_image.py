"""BMP byte layout and PNG output."""

import io
import struct

import pytest
from PIL import Image

from glyphatlas.atlas import build_atlas
from glyphatlas.image import encode_bmp, write_bmp, write_png
from glyphatlas.source import BitmapGlyphSource, FaceMetrics, GlyphRaster


def _header(data):
    return struct.unpack('<2sIHHIIIiHHIIIIII', data[:54])


def test_transparent_2x2_is_70_bytes():
    data = encode_bmp(2, 2, bytes(16))

    assert len(data) == 70
    assert data[:2] == b"BM"
    assert data[22:26] == b"\xfe\xff\xff\xff"
    assert data[54:] == bytes(16)


def test_header_fields():
    data = encode_bmp(3, 5, bytes(3 * 5 * 4))
    (
        signature, file_size, reserved1, reserved2, pixel_offset,
        dib_size, width, height, planes, bpp, compression, image_size,
        x_ppm, y_ppm, colors_used, colors_important,
    ) = _header(data)

    assert signature == b"BM"
    assert file_size == 54 + 60 == len(data)
    assert (reserved1, reserved2) == (0, 0)
    assert pixel_offset == 54
    assert dib_size == 40
    assert width == 3
    assert height == -5
    assert planes == 1
    assert bpp == 32
    assert compression == 0
    assert image_size == 60
    assert (x_ppm, y_ppm) == (2835, 2835)
    assert (colors_used, colors_important) == (0, 0)


def test_pixels_written_as_bgra():
    data = encode_bmp(1, 1, bytes((10, 20, 30, 40)))
    assert data[54:] == bytes((30, 20, 10, 40))


def test_rows_top_first():
    top = (255, 0, 0, 255)
    bottom = (0, 0, 255, 128)
    data = encode_bmp(1, 2, bytes(top + bottom))
    assert data[54:58] == bytes((0, 0, 255, 255))
    assert data[58:62] == bytes((255, 0, 0, 128))


@pytest.mark.parametrize("width, height", [(0, 0), (7, 0), (0, 3)])
def test_zero_area_still_has_valid_header(width, height):
    data = encode_bmp(width, height, b"")
    fields = _header(data)

    assert len(data) == 54
    assert fields[1] == 54
    assert fields[6] == width
    assert fields[7] == -height
    assert fields[11] == 0


def test_buffer_size_mismatch_rejected():
    with pytest.raises(ValueError):
        encode_bmp(2, 2, bytes(12))


def test_write_bmp_matches_encode(glyph_data):
    atlas = build_atlas(BitmapGlyphSource(glyph_data), [ord("A")], 8, 8)
    stream = io.BytesIO()
    write_bmp(atlas, stream)
    assert stream.getvalue() == encode_bmp(8, 8, atlas.pixels)


def test_write_png_keeps_rgba(glyph_data):
    atlas = build_atlas(BitmapGlyphSource(glyph_data), [ord("A"), ord("W")], 16, 16, padding=1)
    stream = io.BytesIO()
    write_png(atlas, stream)

    stream.seek(0)
    with Image.open(stream) as image:
        assert image.format == "PNG"
        assert image.size == (16, 16)
        assert image.convert("RGBA").tobytes() == atlas.pixels


def test_bmp_alpha_is_not_premultiplied():
    raster = GlyphRaster(
        codepoint=0x2E, width=1, height=1, coverage=bytes((100,)),
        min_x=0, min_y=-1, max_x=1, max_y=0, advance=2,
    )

    class OneDot:
        metrics = FaceMetrics(name="dot", size=1, line_height=1, ascent=1)

        def rasterize(self, codepoint):
            return raster

    atlas = build_atlas(OneDot(), [0x2E], 4, 4)
    data = encode_bmp(atlas.width, atlas.height, atlas.pixels)
    offset = 54 + (1 * 4 + 1) * 4
    assert data[offset:offset + 4] == bytes((255, 255, 255, 100))
