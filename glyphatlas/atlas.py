"""
Pack rasterized glyphs into a fixed-size RGBA atlas.

    pack_shelves     - row ("shelf") packing in submission order
    composite_glyph  - paint one glyph's coverage into the shared buffer
    build_atlas      - source -> packer -> compositor, returns a frozen Atlas
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Iterable, Mapping

from .source import FaceMetrics, GlyphMissing, GlyphRaster, GlyphSource


# Cursor starts one pixel in so nothing bleeds into the origin row/column
MARGIN = 1


class AtlasOverflow(Exception):
    """A glyph (or its shelf) does not fit inside the requested sheet."""

    def __init__(self, codepoint: int, width: int, height: int, bin_width: int, bin_height: int):
        super().__init__(
            f"atlas filled up at U+{codepoint:04X} ({width}x{height}); "
            f"sheet {bin_width}x{bin_height} is too small"
        )
        self.codepoint = codepoint
        self.width = width
        self.height = height
        self.bin_width = bin_width
        self.bin_height = bin_height


@dataclass(frozen=True)
class PlacedGlyph:
    codepoint: int
    x: int
    y: int
    width: int
    height: int
    xoffset: int
    yoffset: int
    xadvance: int


@dataclass(frozen=True)
class Atlas:
    width: int
    height: int
    pixels: bytes
    glyphs: Mapping[int, PlacedGlyph]
    metrics: FaceMetrics
    missing: tuple[int, ...] = field(default=())


def pack_shelves(
    rects: Iterable[tuple[int, int, int]],
    bin_width: int,
    bin_height: int,
    padding: int = 0,
) -> list[tuple[int, int, int]]:
    """
    Place (codepoint, width, height) rectangles left-to-right in rows.

    Returns (codepoint, x, y) in input order. A new shelf starts when the
    glyph would reach the right edge; reaching the bottom edge raises
    AtlasOverflow. Input order is never changed.
    """
    if bin_width <= 0 or bin_height <= 0:
        raise ValueError(f"Sheet must have a positive size, got {bin_width}x{bin_height}")
    if padding < 0:
        raise ValueError(f"Padding cannot be negative, got {padding}")

    placements = []
    x, y = MARGIN, MARGIN
    shelf_height = 0

    for codepoint, w, h in rects:
        if w < 0 or h < 0:
            raise ValueError(f"Glyph U+{codepoint:04X} has negative size {w}x{h}")

        if x + w >= bin_width:
            x = MARGIN
            y += shelf_height + padding
            shelf_height = 0

        if MARGIN + w >= bin_width or y + h >= bin_height:
            raise AtlasOverflow(codepoint, w, h, bin_width, bin_height)

        placements.append((codepoint, x, y))
        shelf_height = max(shelf_height, h)
        x += w + padding

    return placements


def composite_glyph(pixels: bytearray, atlas_width: int, x: int, y: int, raster: GlyphRaster):
    """
    Blend white ink with the raster's coverage as alpha over the buffer.

    Straight-alpha source-over; pixels with zero coverage are not touched.
    """
    w = raster.width
    coverage = raster.coverage

    for row in range(raster.height):
        dst = ((y + row) * atlas_width + x) * 4
        for src in range(row * w, row * w + w):
            alpha = coverage[src]
            if alpha:
                if alpha == 255 or pixels[dst + 3] == 0:
                    pixels[dst:dst + 4] = bytes((255, 255, 255, alpha))
                else:
                    _blend_over(pixels, dst, alpha)
            dst += 4


def _blend_over(pixels: bytearray, dst: int, alpha: int):
    # Everything scaled by 255 to stay in integers
    keep = pixels[dst + 3] * (255 - alpha)
    out_alpha = alpha * 255 + keep
    for channel in range(dst, dst + 3):
        pixels[channel] = (65025 * alpha + pixels[channel] * keep + out_alpha // 2) // out_alpha
    pixels[dst + 3] = (out_alpha + 127) // 255


def build_atlas(
    source: GlyphSource,
    codepoints: Iterable[int],
    width: int,
    height: int,
    padding: int = 0,
    progress: Callable[[PlacedGlyph], None] | None = None,
) -> Atlas:
    """
    Rasterize, pack and paint the requested code points into one Atlas.

    Code points the source does not cover are skipped and listed in
    Atlas.missing; repeated code points are placed once. AtlasOverflow
    propagates and no Atlas is returned.
    """
    rasters = []
    missing = []
    seen = set()
    for codepoint in codepoints:
        if codepoint in seen:
            continue
        seen.add(codepoint)
        try:
            rasters.append(source.rasterize(codepoint))
        except GlyphMissing:
            missing.append(codepoint)

    placements = pack_shelves(
        ((r.codepoint, r.width, r.height) for r in rasters),
        width,
        height,
        padding,
    )

    metrics = source.metrics
    pixels = bytearray(width * height * 4)
    placed = {}
    for raster, (codepoint, x, y) in zip(rasters, placements):
        composite_glyph(pixels, width, x, y, raster)
        glyph = PlacedGlyph(
            codepoint=codepoint,
            x=x,
            y=y,
            width=raster.width,
            height=raster.height,
            xoffset=raster.min_x,
            yoffset=raster.min_y + metrics.ascent,
            xadvance=raster.advance,
        )
        placed[codepoint] = glyph
        if progress is not None:
            progress(glyph)

    return Atlas(
        width=width,
        height=height,
        pixels=bytes(pixels),
        glyphs=MappingProxyType({cp: placed[cp] for cp in sorted(placed)}),
        metrics=metrics,
        missing=tuple(missing),
    )
