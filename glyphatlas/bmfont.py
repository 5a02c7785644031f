"""AngelCode BMFont text descriptor for an Atlas."""

import shlex
from typing import TextIO

from .atlas import Atlas


INFO_FLAGS = (
    ("bold", 0),
    ("italic", 0),
    ("charset", ""),
    ("unicode", 1),
    ("stretchH", 100),
    ("smooth", 1),
    ("aa", 1),
    ("padding", (0, 0, 0, 0)),
    ("spacing", (1, 1)),
)

CHAR_FIELDS = ("id", "x", "y", "width", "height", "xoffset", "yoffset", "xadvance", "page", "chnl")


def _to_str(value) -> str:
    if isinstance(value, str):
        return '"{}"'.format(value.replace('"', "'"))
    if isinstance(value, (list, tuple)):
        return ','.join(str(item) for item in value)
    return str(int(value))


def _line(tag: str, items) -> str:
    return '{} {}\n'.format(tag, ' '.join(f'{key}={_to_str(value)}' for key, value in items))


def format_descriptor(atlas: Atlas, image_name: str) -> str:
    """
    Render the descriptor text. Glyph records are written in ascending
    code point order so repeated builds produce identical files.
    """
    metrics = atlas.metrics
    lines = [
        _line("info", (("face", metrics.name), ("size", metrics.size)) + INFO_FLAGS),
        _line("common", (
            ("lineHeight", metrics.line_height),
            ("base", metrics.ascent),
            ("scaleW", atlas.width),
            ("scaleH", atlas.height),
            ("pages", 1),
            ("packed", 0),
        )),
        _line("page", (("id", 0), ("file", image_name))),
        f"chars count={len(atlas.glyphs)}\n",
    ]
    for codepoint in sorted(atlas.glyphs):
        glyph = atlas.glyphs[codepoint]
        lines.append(_line("char", zip(CHAR_FIELDS, (
            glyph.codepoint,
            glyph.x,
            glyph.y,
            glyph.width,
            glyph.height,
            glyph.xoffset,
            glyph.yoffset,
            glyph.xadvance,
            0,
            15,
        ))))
    return "".join(lines)


def write_descriptor(atlas: Atlas, image_name: str, stream: TextIO):
    stream.write(format_descriptor(atlas, image_name))


def _parse_text_dict(line: str) -> dict:
    """Parse space separated key=value pairs."""
    return dict(item.split('=', 1) for item in shlex.split(line) if item)


def parse_descriptor(text: str) -> dict:
    """
    Read a text descriptor back into plain values.

    Returns {"info": {...}, "common": {...}, "pages": [...], "chars": [...]}
    with numeric fields of common/page/char lines converted to int.
    """
    descriptor = {"info": {}, "common": {}, "pages": [], "chars": []}
    for line in text.splitlines():
        if not line or ' ' not in line:
            continue
        tag, rest = line.split(' ', 1)
        values = _parse_text_dict(rest)
        if tag == "info":
            descriptor["info"] = values
        elif tag == "common":
            descriptor["common"] = {key: int(value) for key, value in values.items()}
        elif tag == "page":
            descriptor["pages"].append(
                {key: value if key == "file" else int(value) for key, value in values.items()}
            )
        elif tag == "chars":
            descriptor["count"] = int(values["count"])
        elif tag == "char":
            descriptor["chars"].append({key: int(value) for key, value in values.items()})
    return descriptor
