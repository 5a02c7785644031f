#!/usr/bin/env python3
"""
Build a bitmap font atlas (image + BMFont descriptor) from a font.

Usage:
    uv run python build_atlas.py <atlas.yaml> [output_dir]

    atlas.yaml describes one build:
        font: fonts/Roboto-Regular.ttf   # .ttf/.otf, glyph YAML file or directory
        size: 32
        dpi: 72
        sheet: [512, 512]                # or a single number for a square sheet
        padding: 2
        hinting: full                    # none, vertical or full
        format: bmp                      # bmp or png
        chars: "ABCabc123"               # default: ASCII 32-126
        output: roboto-32                # default: <font name>-<size>

Outputs:
    output_dir/<output>.bmp (or .png)  - Texture atlas
    output_dir/<output>.fnt            - BMFont text descriptor
"""

import os
import sys
import tempfile
from pathlib import Path

import yaml

from glyphatlas import (
    IMAGE_WRITERS,
    AtlasOverflow,
    FontParseError,
    build_atlas,
    open_glyph_source,
    write_descriptor,
)
from glyphatlas.source import HINTING_FLAGS


DEFAULT_CHARS = "".join(chr(i) for i in range(32, 127))

# mkstemp creates files as 0600; outputs get what open() would give them
_UMASK = os.umask(0)
os.umask(_UMASK)
FILE_MODE = 0o666 & ~_UMASK


class ConfigError(ValueError):
    """The build configuration is missing a value or has a bad one."""


class AtlasWriteError(OSError):
    """An output file could not be created or written."""


def _int_option(config: dict, key: str, default: int, minimum: int = 1) -> int:
    value = config.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigError(f"'{key}' must be an integer >= {minimum}, got {value!r}")
    return value


def _parse_chars(chars) -> list[int]:
    if isinstance(chars, str):
        return [ord(c) for c in chars]
    if isinstance(chars, list) and all(isinstance(c, int) and not isinstance(c, bool) for c in chars):
        return list(chars)
    raise ConfigError(f"'chars' must be a string or a list of code points, got {chars!r}")


def load_config(path: Path) -> dict:
    """Load and validate a build configuration from YAML."""
    with open(path) as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Could not parse {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping")

    if "font" not in raw:
        raise ConfigError("'font' is required")
    font_path = Path(raw["font"])
    if not font_path.is_absolute():
        font_path = Path(path).parent / font_path

    sheet = raw.get("sheet", 512)
    if isinstance(sheet, int):
        sheet = [sheet, sheet]
    if (
        not isinstance(sheet, list)
        or len(sheet) != 2
        or not all(isinstance(v, int) and not isinstance(v, bool) and v > 0 for v in sheet)
    ):
        raise ConfigError(f"'sheet' must be a positive integer or [width, height], got {sheet!r}")

    hinting = raw.get("hinting", "full")
    if hinting not in HINTING_FLAGS:
        raise ConfigError(f"'hinting' must be one of {sorted(HINTING_FLAGS)}, got {hinting!r}")

    image_format = str(raw.get("format", "bmp")).lower()
    if image_format not in IMAGE_WRITERS:
        raise ConfigError(f"'format' must be one of {sorted(IMAGE_WRITERS)}, got {image_format!r}")

    size = _int_option(raw, "size", 32)
    return {
        "font": font_path,
        "size": size,
        "dpi": _int_option(raw, "dpi", 72),
        "sheet_width": sheet[0],
        "sheet_height": sheet[1],
        "padding": _int_option(raw, "padding", 0, minimum=0),
        "hinting": hinting,
        "format": image_format,
        "chars": _parse_chars(raw.get("chars", DEFAULT_CHARS)),
        "output": str(raw.get("output", f"{font_path.stem}-{size}")),
    }


def _write_temp(path: Path, write, mode: str) -> str:
    """
    Write to a temporary file beside ``path`` and return its name. The
    file gets the permissions a plain open() would give it.
    """
    try:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    except OSError as exc:
        raise AtlasWriteError(f"Could not create {path}: {exc}") from exc

    written = False
    try:
        if "b" in mode:
            with os.fdopen(fd, mode) as f:
                write(f)
        else:
            with os.fdopen(fd, mode, encoding="utf-8", newline="\n") as f:
                write(f)
        os.chmod(tmp_name, FILE_MODE)
        written = True
    except OSError as exc:
        raise AtlasWriteError(f"Could not write {path}: {exc}") from exc
    finally:
        if not written:
            Path(tmp_name).unlink(missing_ok=True)
    return tmp_name


def write_outputs(atlas, output_dir: Path, name: str, image_format: str = "bmp") -> tuple[Path, Path]:
    """
    Save the atlas image and its descriptor.

    Both files are staged first and only moved into place once both are
    complete. A failure while staging leaves any earlier pair untouched; a
    failure while moving removes both outputs.
    """
    image_path = output_dir / f"{name}.{image_format}"
    descriptor_path = output_dir / f"{name}.fnt"
    image_writer = IMAGE_WRITERS[image_format]

    staged = []
    try:
        staged.append((_write_temp(image_path, lambda f: image_writer(atlas, f), "wb"), image_path))
        staged.append((
            _write_temp(descriptor_path, lambda f: write_descriptor(atlas, image_path.name, f), "w"),
            descriptor_path,
        ))
        try:
            for tmp_name, path in staged:
                os.replace(tmp_name, path)
        except OSError as exc:
            image_path.unlink(missing_ok=True)
            descriptor_path.unlink(missing_ok=True)
            raise AtlasWriteError(f"Could not save {image_path.name} and {descriptor_path.name}: {exc}") from exc
    finally:
        for tmp_name, _ in staged:
            Path(tmp_name).unlink(missing_ok=True)
    return image_path, descriptor_path


def generate(config: dict):
    """Build the Atlas described by a loaded configuration."""
    source = open_glyph_source(
        config["font"],
        size=config["size"],
        dpi=config["dpi"],
        hinting=config["hinting"],
    )
    return build_atlas(
        source,
        config["chars"],
        config["sheet_width"],
        config["sheet_height"],
        padding=config["padding"],
    )


def main():
    if len(sys.argv) < 2:
        print("Usage: uv run python build_atlas.py <atlas.yaml> [output_dir]")
        print("\nOutputs:")
        print("  output_dir/<output>.bmp  (or .png)")
        print("  output_dir/<output>.fnt")
        print("\nExample:")
        print("  uv run python build_atlas.py atlas.yaml build/")
        sys.exit(1)

    config_path = Path(sys.argv[1])

    if len(sys.argv) > 2:
        output_dir = Path(sys.argv[2])
    else:
        output_dir = Path(".")

    if not config_path.exists():
        print(f"Error: Config file not found: {config_path}")
        sys.exit(1)

    try:
        config = load_config(config_path)
        if not config["font"].exists():
            print(f"Error: Font not found: {config['font']}")
            sys.exit(1)

        atlas = generate(config)
        for codepoint in atlas.missing:
            print(f"Skipping U+{codepoint:04X} - not found in font")

        output_dir.mkdir(parents=True, exist_ok=True)
        image_path, descriptor_path = write_outputs(
            atlas, output_dir, config["output"], config["format"]
        )
    except (ConfigError, FontParseError, AtlasOverflow, OSError) as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    print(f"Atlas saved to: {image_path}")
    print(f"Descriptor saved to: {descriptor_path}")
    print(f"  Face: {atlas.metrics.name} @ {atlas.metrics.size}")
    print(f"  Glyphs: {len(atlas.glyphs)}")
    print(f"  Sheet: {atlas.width}x{atlas.height}")
    if atlas.missing:
        print(f"  Missing: {len(atlas.missing)}")


if __name__ == "__main__":
    main()
