"""
Atlas image encoders.

BMP layout (little-endian, 54-byte header):
    File header (14 bytes):
        signature: 2 bytes ("BM")
        file_size: 4 bytes
        reserved: 4 bytes (0)
        pixel_offset: 4 bytes (54)
    DIB header (40 bytes, BITMAPINFOHEADER):
        header_size: 4 bytes (40)
        width: 4 bytes
        height: 4 bytes, stored negative so rows run top-down
        planes: 2 bytes (1)
        bits_per_pixel: 2 bytes (32)
        compression: 4 bytes (0 = BI_RGB)
        image_size: 4 bytes
        x/y pixels per meter: 4 bytes each (2835, ~72 DPI)
        colors_used, colors_important: 4 bytes each (0)
    Pixel data:
        rows top first, 4 bytes per pixel in B, G, R, A order

Alpha is straight, not premultiplied: ink pixels are white (255, 255, 255)
with coverage in the alpha byte, so a consumer can tint by multiplying RGB.
"""

import struct
from typing import BinaryIO

from PIL import Image

from .atlas import Atlas


BMP_FILE_HEADER_SIZE = 14
BMP_DIB_HEADER_SIZE = 40
BMP_PIXEL_OFFSET = BMP_FILE_HEADER_SIZE + BMP_DIB_HEADER_SIZE
BMP_BITS_PER_PIXEL = 32
BMP_PIXELS_PER_METER = 2835
BI_RGB = 0


def encode_bmp(width: int, height: int, pixels: bytes) -> bytes:
    """Encode an RGBA buffer as a 32-bit top-down BMP."""
    if width < 0 or height < 0:
        raise ValueError(f"Image size cannot be negative, got {width}x{height}")
    image_size = width * height * 4
    if len(pixels) != image_size:
        raise ValueError(
            f"Pixel buffer has {len(pixels)} bytes, expected {image_size} for {width}x{height}"
        )

    file_header = struct.pack(
        '<2sIHHI',
        b"BM",
        BMP_PIXEL_OFFSET + image_size,
        0,
        0,
        BMP_PIXEL_OFFSET,
    )
    dib_header = struct.pack(
        '<IIiHHIIIIII',
        BMP_DIB_HEADER_SIZE,
        width,
        -height,
        1,
        BMP_BITS_PER_PIXEL,
        BI_RGB,
        image_size,
        BMP_PIXELS_PER_METER,
        BMP_PIXELS_PER_METER,
        0,
        0,
    )

    # RGBA -> BGRA; 32 bpp rows are always 4-byte aligned so no row padding
    bgra = bytearray(pixels)
    bgra[0::4] = pixels[2::4]
    bgra[2::4] = pixels[0::4]

    return file_header + dib_header + bytes(bgra)


def write_bmp(atlas: Atlas, stream: BinaryIO):
    stream.write(encode_bmp(atlas.width, atlas.height, atlas.pixels))


def write_png(atlas: Atlas, stream: BinaryIO):
    image = Image.frombytes("RGBA", (atlas.width, atlas.height), atlas.pixels)
    image.save(stream, format="PNG")


IMAGE_WRITERS = {
    "bmp": write_bmp,
    "png": write_png,
}
