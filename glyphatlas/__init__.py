"""Pack font glyphs into a bitmap texture atlas with a BMFont descriptor."""

from .atlas import Atlas, AtlasOverflow, PlacedGlyph, build_atlas, composite_glyph, pack_shelves
from .bmfont import format_descriptor, parse_descriptor, write_descriptor
from .image import IMAGE_WRITERS, encode_bmp, write_bmp, write_png
from .source import (
    BitmapGlyphSource,
    FaceMetrics,
    FontParseError,
    FreeTypeGlyphSource,
    GlyphMissing,
    GlyphRaster,
    GlyphSource,
    open_glyph_source,
)

__all__ = [
    "Atlas",
    "AtlasOverflow",
    "BitmapGlyphSource",
    "FaceMetrics",
    "FontParseError",
    "FreeTypeGlyphSource",
    "GlyphMissing",
    "GlyphRaster",
    "GlyphSource",
    "IMAGE_WRITERS",
    "PlacedGlyph",
    "build_atlas",
    "composite_glyph",
    "encode_bmp",
    "format_descriptor",
    "open_glyph_source",
    "pack_shelves",
    "parse_descriptor",
    "write_bmp",
    "write_descriptor",
    "write_png",
]
