"""
Glyph sources: code point -> alpha coverage bitmap + ink box + advance.

Two sources are provided:
    FreeTypeGlyphSource  - TrueType/OpenType fonts, rasterized with FreeType
    BitmapGlyphSource    - glyphs drawn as "#" rows in YAML files

Both expose the same narrow interface (``metrics`` and ``rasterize``) so the
atlas builder never touches rasterizer internals.
"""

import io
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import freetype
import yaml
from fontTools.ttLib import TTFont


FONT_SUFFIXES = (".ttf", ".otf")
YAML_SUFFIXES = (".yaml", ".yml")

HINTING_FLAGS = {
    "none": freetype.FT_LOAD_NO_HINTING,
    "vertical": freetype.FT_LOAD_TARGET_LIGHT,
    "full": freetype.FT_LOAD_DEFAULT,
}


class FontParseError(ValueError):
    """The font program (or glyph definition file) could not be read."""


class GlyphMissing(LookupError):
    """The font has no glyph for a requested code point."""

    def __init__(self, codepoint: int):
        super().__init__(f"no glyph for U+{codepoint:04X}")
        self.codepoint = codepoint


@dataclass(frozen=True)
class GlyphRaster:
    codepoint: int
    width: int
    height: int
    coverage: bytes
    min_x: int
    min_y: int
    max_x: int
    max_y: int
    advance: int


@dataclass(frozen=True)
class FaceMetrics:
    name: str
    size: int
    line_height: int
    ascent: int


class GlyphSource(Protocol):
    metrics: FaceMetrics

    def rasterize(self, codepoint: int) -> GlyphRaster:
        ...


def _ceil_px(units: float, ppem: float, units_per_em: int) -> int:
    return math.ceil(units * ppem / units_per_em)


class FreeTypeGlyphSource:
    """
    Rasterize glyphs from a TrueType/OpenType font program.

    fontTools reads the name, hhea and cmap tables; FreeType renders each
    glyph to an 8-bit coverage bitmap. The FreeType face is private to this
    instance and must not be shared between threads.
    """

    def __init__(
        self,
        font_bytes: bytes,
        size: float,
        dpi: int = 72,
        hinting: str = "full",
        name: str | None = None,
    ):
        if hinting not in HINTING_FLAGS:
            raise ValueError(
                f"Unknown hinting '{hinting}', expected one of {sorted(HINTING_FLAGS)}"
            )
        if size <= 0 or dpi <= 0:
            raise ValueError(f"size and dpi must be positive, got {size} and {dpi}")

        try:
            font = TTFont(io.BytesIO(font_bytes))
            units_per_em = font["head"].unitsPerEm
            hhea = font["hhea"]
            cmap = font.getBestCmap() or {}
            family = font["name"].getDebugName(1)
            # FreeType reads from the stream lazily, so it lives as long as the face
            stream = io.BytesIO(font_bytes)
            face = freetype.Face(stream)
        except Exception as exc:
            raise FontParseError(f"Could not parse font: {exc}") from exc

        ppem = size * dpi / 72
        self.metrics = FaceMetrics(
            name=family or name or "unknown",
            size=int(size),
            line_height=_ceil_px(hhea.ascent - hhea.descent + hhea.lineGap, ppem, units_per_em),
            ascent=_ceil_px(hhea.ascent, ppem, units_per_em),
        )
        self._cmap = cmap
        self._stream = stream
        self._face = face
        self._face.set_char_size(int(round(size * 64)), 0, dpi, dpi)
        # Embedded bitmap strikes come back as 1, 2 or 4 bit; always render outlines
        self._load_flags = freetype.FT_LOAD_RENDER | freetype.FT_LOAD_NO_BITMAP | HINTING_FLAGS[hinting]

    @classmethod
    def from_path(cls, path: Path, size: float, dpi: int = 72, hinting: str = "full"):
        with open(path, "rb") as f:
            font_bytes = f.read()
        return cls(font_bytes, size, dpi=dpi, hinting=hinting, name=Path(path).stem)

    def rasterize(self, codepoint: int) -> GlyphRaster:
        if codepoint not in self._cmap:
            raise GlyphMissing(codepoint)
        glyph_index = self._face.get_char_index(codepoint)
        if glyph_index == 0:
            raise GlyphMissing(codepoint)

        self._face.load_glyph(glyph_index, self._load_flags)
        slot = self._face.glyph
        bitmap = slot.bitmap
        width, height, pitch = bitmap.width, bitmap.rows, abs(bitmap.pitch)
        if width and height and bitmap.pixel_mode != freetype.FT_PIXEL_MODE_GRAY:
            raise FontParseError(
                f"Glyph U+{codepoint:04X} rendered with pixel mode {bitmap.pixel_mode}, "
                f"expected 8-bit gray"
            )

        # Rows may be padded past the bitmap width; keep only visible pixels
        buffer = bitmap.buffer
        coverage = bytearray()
        for row in range(height):
            start = row * pitch
            coverage.extend(buffer[start:start + width])

        min_x = slot.bitmap_left
        min_y = -slot.bitmap_top
        return GlyphRaster(
            codepoint=codepoint,
            width=width,
            height=height,
            coverage=bytes(coverage),
            min_x=min_x,
            min_y=min_y,
            max_x=min_x + width,
            max_y=min_y + height,
            advance=math.ceil(slot.advance.x / 64),
        )


# ---------------------------------------------------------------------------
# Bitmap (YAML) glyphs
# ---------------------------------------------------------------------------

def load_glyph_data(path: Path) -> dict:
    """Load glyph definitions from a YAML file or directory of YAML files."""
    try:
        if path.is_dir():
            metadata = {}
            glyphs = {}
            yaml_files = sorted(p for p in path.iterdir() if p.suffix.lower() in YAML_SUFFIXES)
            for yaml_file in yaml_files:
                with open(yaml_file) as f:
                    data = yaml.safe_load(f)
                if data and "metadata" in data:
                    metadata = data["metadata"]
                if data and "glyphs" in data:
                    glyphs.update(data["glyphs"])
            return {"metadata": metadata, "glyphs": glyphs}
        with open(path) as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise FontParseError(f"Could not parse glyph data in {path}: {exc}") from exc


def parse_bitmap(bitmap: list) -> list[list[int]]:
    """
    Convert bitmap rows to a 2D array of coverage values (0 or 255).
    Accepts either string rows ("#" or "1" = on) or int arrays of 0/1.
    """
    if not bitmap:
        return []

    if isinstance(bitmap[0], str):
        return [
            [255 if c == '#' or c == '1' else 0 for c in row]
            for row in bitmap
        ]
    return [[255 if pixel else 0 for pixel in row] for row in bitmap]


def glyph_key_to_codepoint(key) -> int:
    """Map a glyph key ("A", "uni00C4", "u1F600", "U+00C4") to its code point."""
    key = str(key)
    if len(key) == 1:
        return ord(key)
    for prefix in ("U+", "uni", "u"):
        if key.startswith(prefix):
            try:
                return int(key[len(prefix):], 16)
            except ValueError:
                break
    raise FontParseError(f"Cannot map glyph key '{key}' to a code point")


class BitmapGlyphSource:
    """
    Serve glyphs authored as bitmaps in YAML.

    y_offset places the bottom bitmap row relative to the baseline:
        0  = bottom row sits on the baseline
        -3 = bottom row is 3 pixels below the baseline
    """

    def __init__(self, glyph_data: dict):
        if not isinstance(glyph_data, dict) or "glyphs" not in glyph_data:
            raise FontParseError("Glyph data has no 'glyphs' section")

        metadata = glyph_data.get("metadata") or {}
        try:
            ascent = int(metadata["ascent"])
            line_height = int(metadata["line_height"])
        except (KeyError, TypeError, ValueError) as exc:
            raise FontParseError(
                f"Glyph metadata needs integer 'ascent' and 'line_height': {exc}"
            ) from exc

        self.metrics = FaceMetrics(
            name=str(metadata.get("name", "unknown")),
            size=int(metadata.get("size", line_height)),
            line_height=line_height,
            ascent=ascent,
        )
        self._glyphs = {}
        for key, glyph_def in (glyph_data["glyphs"] or {}).items():
            self._glyphs[glyph_key_to_codepoint(key)] = glyph_def or {}

    @classmethod
    def from_path(cls, path: Path):
        return cls(load_glyph_data(Path(path)))

    def rasterize(self, codepoint: int) -> GlyphRaster:
        glyph_def = self._glyphs.get(codepoint)
        if glyph_def is None:
            raise GlyphMissing(codepoint)

        bitmap = parse_bitmap(glyph_def.get("bitmap") or [])
        height = len(bitmap)
        width = max((len(row) for row in bitmap), default=0)
        row_widths = {len(row) for row in bitmap}
        if len(row_widths) > 1:
            raise FontParseError(
                f"Glyph U+{codepoint:04X} has inconsistent row widths: {sorted(row_widths)}"
            )

        try:
            x_offset = int(glyph_def.get("x_offset", 0))
            y_offset = int(glyph_def.get("y_offset", 0))
            advance = glyph_def.get("advance_width")
            advance = width + x_offset + 1 if advance is None else int(advance)
        except (TypeError, ValueError) as exc:
            raise FontParseError(f"Glyph U+{codepoint:04X} has a non-numeric offset or advance: {exc}") from exc

        # Flip to y-down: the bitmap's bottom edge is y_offset pixels above
        # the baseline
        min_y = -(y_offset + height)
        return GlyphRaster(
            codepoint=codepoint,
            width=width,
            height=height,
            coverage=bytes(value for row in bitmap for value in row),
            min_x=x_offset,
            min_y=min_y,
            max_x=x_offset + width,
            max_y=min_y + height,
            advance=advance,
        )


def open_glyph_source(path: Path, size: float = 32, dpi: int = 72, hinting: str = "full"):
    """Pick a glyph source for a font file or a YAML glyph definition path."""
    path = Path(path)
    if path.is_dir() or path.suffix.lower() in YAML_SUFFIXES:
        return BitmapGlyphSource.from_path(path)
    if path.suffix.lower() in FONT_SUFFIXES:
        return FreeTypeGlyphSource.from_path(path, size, dpi=dpi, hinting=hinting)
    raise FontParseError(
        f"Unsupported font format: {path.suffix} (supported: .ttf, .otf, .yaml)"
    )
