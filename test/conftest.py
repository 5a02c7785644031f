import copy
import io
import sys
from pathlib import Path

import pytest
import yaml

from fontTools.fontBuilder import FontBuilder
from fontTools.pens.t2CharStringPen import T2CharStringPen

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from glyphatlas.source import glyph_key_to_codepoint, parse_bitmap


# Pixel glyphs shared by the YAML source and the synthetic OpenType font.
# y_offset: 0 = bottom row on the baseline, negative = descends below it.
TINY_GLYPHS = {
    "metadata": {
        "name": "Atlas Test",
        "size": 10,
        "ascent": 8,
        "line_height": 10,
    },
    "glyphs": {
        "A": {
            "bitmap": [
                ".#.",
                "#.#",
                "###",
                "#.#",
                "#.#",
            ],
            "advance_width": 4,
        },
        "B": {
            "bitmap": [
                "##.",
                "#.#",
                "##.",
                "#.#",
                "##.",
            ],
            "advance_width": 4,
        },
        "C": {
            "bitmap": [
                ".##",
                "#..",
                "#..",
                "#..",
                ".##",
            ],
            "advance_width": 4,
        },
        "g": {
            "bitmap": [
                ".##",
                "#.#",
                ".##",
                "..#",
                "##.",
            ],
            "y_offset": -2,
            "advance_width": 4,
        },
        "W": {
            "bitmap": [
                "#...#",
                "#...#",
                "#.#.#",
                "##.##",
                "#...#",
            ],
            "advance_width": 6,
        },
        # Combining acute accent: no ink, no advance
        "uni0301": {
            "bitmap": [],
            "advance_width": 0,
        },
    },
}

UNITS_PER_EM = 1000
PIXEL_SIZE = 100  # font units per pixel at 10px/em


def bitmap_to_rectangles(bitmap, pixel_size, y_offset=0):
    """One (x, y, w, h) square per "on" pixel, font units, y=0 at baseline."""
    rectangles = []
    height = len(bitmap)
    for row_idx, row in enumerate(bitmap):
        y = (y_offset + height - 1 - row_idx) * pixel_size
        for col_idx, pixel in enumerate(row):
            if pixel:
                rectangles.append((col_idx * pixel_size, y, pixel_size, pixel_size))
    return rectangles


def build_test_font(glyph_data: dict) -> bytes:
    """Compile pixel glyph definitions into a CFF-based OpenType font."""
    glyphs_def = glyph_data["glyphs"]
    glyph_order = [".notdef"] + list(glyphs_def)
    cmap = {glyph_key_to_codepoint(name): name for name in glyphs_def}

    fb = FontBuilder(UNITS_PER_EM, isTTF=False)
    fb.setupGlyphOrder(glyph_order)
    fb.setupCharacterMap(cmap)

    class GlyphSet:
        pass
    glyph_set = GlyphSet()

    pen = T2CharStringPen(width=500, glyphSet=glyph_set)
    pen.moveTo((50, 0))
    pen.lineTo((50, 700))
    pen.lineTo((450, 700))
    pen.lineTo((450, 0))
    pen.closePath()
    charstrings = {".notdef": pen.getCharString()}
    metrics = {".notdef": (500, 50)}

    for name, glyph_def in glyphs_def.items():
        advance = glyph_def["advance_width"] * PIXEL_SIZE
        bitmap = parse_bitmap(glyph_def["bitmap"])
        rectangles = bitmap_to_rectangles(bitmap, PIXEL_SIZE, glyph_def.get("y_offset", 0))
        pen = T2CharStringPen(width=advance, glyphSet=glyph_set)
        for x, y, w, h in rectangles:
            pen.moveTo((x, y))
            pen.lineTo((x, y + h))
            pen.lineTo((x + w, y + h))
            pen.lineTo((x + w, y))
            pen.closePath()
        charstrings[name] = pen.getCharString()
        metrics[name] = (advance, min((r[0] for r in rectangles), default=0))

    family = glyph_data["metadata"]["name"]
    fb.setupCFF(
        psName=family.replace(" ", "") + "-Regular",
        fontInfo={"FamilyName": family, "FullName": f"{family} Regular"},
        charStringsDict=charstrings,
        privateDict={},
    )
    fb.setupMaxp()
    fb.setupHorizontalMetrics(metrics)
    fb.setupHorizontalHeader(ascent=800, descent=-200)
    fb.setupNameTable({"familyName": family, "styleName": "Regular"})
    fb.setupOS2(
        sTypoAscender=800,
        sTypoDescender=-200,
        sTypoLineGap=0,
        usWinAscent=800,
        usWinDescent=200,
    )
    fb.setupPost()

    out = io.BytesIO()
    fb.save(out)
    return out.getvalue()


@pytest.fixture
def glyph_data():
    return copy.deepcopy(TINY_GLYPHS)


@pytest.fixture(scope="session")
def font_bytes():
    return build_test_font(TINY_GLYPHS)


@pytest.fixture
def font_path(tmp_path, font_bytes):
    path = tmp_path / "AtlasTest.otf"
    path.write_bytes(font_bytes)
    return path


@pytest.fixture
def glyph_yaml(tmp_path):
    path = tmp_path / "tiny.yaml"
    path.write_text(yaml.safe_dump(TINY_GLYPHS, allow_unicode=True))
    return path
