#!/usr/bin/env python3
"""
Convert raster images into C source arrays for microcontroller displays.

Supported output formats:
- rgb565: one 16-bit word per pixel (5 bits red, 6 bits green, 5 bits blue)
- monov:  1 bit per pixel, 8 vertically stacked pixels per byte (LSB on top),
          image height padded to a multiple of 8
- monoh:  1 bit per pixel, 8 horizontally adjacent pixels per byte (MSB left),
          image width padded to a multiple of 8, written as binary literals

Usage:
    python convert_image.py -m monov -d -a logo.png
"""
import os
import re
import sys
import argparse
from collections import namedtuple

import numpy as np
from PIL import Image, ImageColor

# --- Conversion modes ---
MODE_RGB565 = 'rgb565'
MODE_MONO_VERTICAL = 'monov'
MODE_MONO_HORIZONTAL = 'monoh'
MODES = (MODE_RGB565, MODE_MONO_VERTICAL, MODE_MONO_HORIZONTAL)
MODE_ALIASES = {'mono': MODE_MONO_VERTICAL}

# Luma level (0-255) at or above which a pixel becomes a set (white) bit
MONO_THRESHOLD = 128

# Per-channel maximum of a quantized RGB565 pixel (red, green, blue)
RGB565_MAX = np.array([31, 63, 31], dtype=np.uint8)
RGB565_SHIFT = np.array([3, 2, 3], dtype=np.uint8)

# 70 glyphs, densest first
ASCII_RAMP = "$@B%8&WM#*oahkbdpqwmZO0QLCJUYXzcvunxrjft/\\|()1{}[]?-_+~<>i!lI;:,\"^`'. "
ASCII_PREFIX = "// "

ConverterOptions = namedtuple('ConverterOptions', [
    'mode',
    'background_color',
    'invert_colors',
    'include_dimensions',
    'create_ascii_art',
    'variable_name',
    'variable_type',
], defaults=(
    MODE_RGB565,
    (0, 0, 0, 255),
    False,
    False,
    False,
    '',
    'const unsigned short PROGMEM',
))

ReducedImage = namedtuple('ReducedImage', ['mode', 'width', 'height', 'pixels'])
EncodedFragment = namedtuple('EncodedFragment', ['text', 'count'])

PRESETS = {
    'arduboy': {
        'mode': MODE_MONO_VERTICAL,
        'variable_type': 'const unsigned char PROGMEM',
        'include_dimensions': True,
        'background_color': (0, 0, 0, 255),
    },
    'cos': {
        'mode': MODE_RGB565,
        'variable_type': 'const unsigned short PROGMEM',
        'background_color': (0, 0, 0, 255),
    },
    'cosmono': {
        'mode': MODE_MONO_HORIZONTAL,
        'variable_type': 'const unsigned char PROGMEM',
        'background_color': (0, 0, 0, 255),
    },
}


def apply_preset(options, name):
    """Return a copy of options with the named preset's settings applied."""
    try:
        preset = PRESETS[name]
    except KeyError:
        raise ValueError(f"Unknown preset: {name!r} (expected one of {', '.join(sorted(PRESETS))})")
    return options._replace(**preset)


def _check_mode(mode):
    if mode not in MODES:
        raise ValueError(f"Unsupported conversion mode: {mode!r}")


# --- Reduction ---

def _round_up_8(value):
    return (value + 7) // 8 * 8


def reduced_size(width, height, mode):
    """Return the (width, height) of the target grid for the given mode.

    monoh pads the width and monov pads the height to a multiple of 8;
    rgb565 keeps the source size.
    """
    _check_mode(mode)
    if mode == MODE_MONO_HORIZONTAL:
        width = _round_up_8(width)
    elif mode == MODE_MONO_VERTICAL:
        height = _round_up_8(height)
    return width, height


def reduce_image(image, options):
    """Reduce a source image to the target pixel format.

    The source is drawn at (0, 0) over a canvas filled with the background
    color, so the background only shows in the padding and through
    transparent source pixels. Inversion happens after quantization.
    The source image is not modified.
    """
    mode = options.mode
    width, height = reduced_size(image.width, image.height, mode)

    canvas = Image.new('RGBA', (width, height), tuple(options.background_color))
    canvas.alpha_composite(image.convert('RGBA'), (0, 0))

    if mode == MODE_RGB565:
        rgb = np.asarray(canvas.convert('RGB'), dtype=np.uint8)
        pixels = rgb >> RGB565_SHIFT
        if options.invert_colors:
            pixels = RGB565_MAX - pixels
    else:
        gray = np.asarray(canvas.convert('L'), dtype=np.uint8)
        pixels = (gray >= MONO_THRESHOLD).astype(np.uint8)
        if options.invert_colors:
            pixels = 1 - pixels

    return ReducedImage(mode, width, height, pixels)


def reduced_to_image(reduced):
    """Build a Pillow image showing a reduced grid (for previews)."""
    if reduced.mode == MODE_RGB565:
        pixels = reduced.pixels.astype(np.uint8)
        rgb = np.empty_like(pixels)
        # Expand back to 8 bits by repeating the high bits into the low ones
        rgb[..., 0] = (pixels[..., 0] << 3) | (pixels[..., 0] >> 2)
        rgb[..., 1] = (pixels[..., 1] << 2) | (pixels[..., 1] >> 4)
        rgb[..., 2] = (pixels[..., 2] << 3) | (pixels[..., 2] >> 2)
        return Image.fromarray(rgb, 'RGB')
    _check_mode(reduced.mode)
    gray = (reduced.pixels.astype(np.uint8) * 255).astype(np.uint8)
    return Image.fromarray(gray, 'L').convert('1')


# --- Encoders ---

def rgb565_value(red, green, blue):
    """Pack quantized channels into a 16-bit RGB565 word (red in the high bits)."""
    return (red << 11) | (green << 5) | blue


def _join_rows(rows):
    """Join token rows: comma-separated, one row per line, no trailing comma."""
    lines = [", ".join(row) for row in rows if row]
    if not lines:
        return ""
    return ", \n".join(lines) + "\n"


def encode_rgb565(reduced):
    """Encode an RGB565 grid row by row as 0xHHHH words."""
    pixels = reduced.pixels.astype(np.uint16)
    words = rgb565_value(pixels[..., 0], pixels[..., 1], pixels[..., 2])
    rows = [[f"0x{value:04X}" for value in row] for row in words.tolist()]
    return EncodedFragment(_join_rows(rows), 2 * reduced.width * reduced.height)


def encode_mono_vertical(reduced):
    """Encode a mono grid in bands of 8 rows.

    Each byte covers one column of a band, top pixel in bit 0.
    """
    packed = np.packbits(reduced.pixels.astype(np.uint8), axis=0, bitorder='little')
    rows = [[f"0x{value:02X}" for value in band] for band in packed.tolist()]
    return EncodedFragment(_join_rows(rows), int(packed.size))


def encode_mono_horizontal(reduced):
    """Encode a mono grid row by row, 8 pixels per byte, left pixel in bit 7.

    Bytes are written as binary literals (B01101001).
    """
    packed = np.packbits(reduced.pixels.astype(np.uint8), axis=1, bitorder='big')
    rows = [[f"B{value:08b}" for value in row] for row in packed.tolist()]
    return EncodedFragment(_join_rows(rows), int(packed.size))


ENCODERS = {
    MODE_RGB565: encode_rgb565,
    MODE_MONO_VERTICAL: encode_mono_vertical,
    MODE_MONO_HORIZONTAL: encode_mono_horizontal,
}


def encode(reduced, mode):
    """Encode a reduced grid with the encoder registered for mode."""
    try:
        encoder = ENCODERS[mode]
    except KeyError:
        raise ValueError(f"Unsupported conversion mode: {mode!r}")
    return encoder(reduced)


# --- ASCII art ---

def ascii_intensity(reduced):
    """Per-pixel intensity in [0, 1] (slightly above 0 for black RGB565 pixels)."""
    if reduced.mode == MODE_RGB565:
        ranges = RGB565_MAX.astype(np.float64) + 1
        return ((reduced.pixels.astype(np.float64) + 1) / ranges).sum(axis=2) / 3
    return reduced.pixels.astype(np.float64)


def render_ascii(reduced):
    """Return one commented ASCII-art line per row of the reduced grid."""
    last = len(ASCII_RAMP) - 1
    indices = np.clip(np.floor(last * ascii_intensity(reduced)).astype(np.int64), 0, last)
    return [ASCII_PREFIX + "".join(ASCII_RAMP[i] for i in row) for row in indices.tolist()]


# --- Source fragment ---

def create_source_code(image, options):
    """Create the complete C fragment for one image.

    Returns an EncodedFragment holding the text and the number of data bytes.
    """
    reduced = reduce_image(image, options)
    fragment = encode(reduced, options.mode)

    parts = []
    if options.create_ascii_art:
        parts.extend(line + "\n" for line in render_ascii(reduced))
    parts.append(f"{options.variable_type} {options.variable_name}[] = {{\n")
    if options.include_dimensions:
        parts.append(f"{reduced.width}, {reduced.height}, \n")
    parts.append(fragment.text)
    parts.append("};\n\n")
    return EncodedFragment("".join(parts), fragment.count)


# --- File handling ---

def load_image(filename):
    """Load an image file as RGBA."""
    with Image.open(filename) as img:
        return img.convert('RGBA')


def default_output_filename(filename, include_directory=True):
    """Source file name for an image: same stem with a .c extension."""
    stem = os.path.splitext(os.path.basename(filename))[0] + '.c'
    if include_directory:
        return os.path.join(os.path.dirname(filename), stem)
    return stem


def default_variable_name(filename):
    stem = os.path.splitext(os.path.basename(filename))[0]
    return re.sub(r'[^a-zA-Z0-9\-_]', '', stem)


def parse_color(value):
    """Parse a color given as #RRGGBB, 0xRRGGBB, an integer or a color name.

    Returns an opaque RGBA tuple.
    """
    text = value.strip()
    try:
        if text.startswith('#'):
            number = int(text[1:], 16)
        elif re.fullmatch(r'0[0-7]+', text):
            number = int(text, 8)
        elif text[:1].isdigit():
            number = int(text, 0)
        else:
            red, green, blue = ImageColor.getrgb(text)[:3]
            return (red, green, blue, 255)
    except ValueError:
        raise ValueError(f"Invalid color: {value!r}")
    if not 0 <= number <= 0xFFFFFF:
        raise ValueError(f"Invalid color: {value!r}")
    return ((number >> 16) & 0xFF, (number >> 8) & 0xFF, number & 0xFF, 255)


def save_output_file(text, filename, append=False):
    """Write a fragment to filename, appending or truncating."""
    with open(filename, 'a' if append else 'w', encoding='utf-8', newline='\n') as f:
        f.write(text)


def convert_file(filename, output_filename, options, append=False):
    """Convert one image file and write its fragment. Returns the byte count."""
    image = load_image(filename)
    if not options.variable_name:
        options = options._replace(variable_name=default_variable_name(filename))
    fragment = create_source_code(image, options)
    save_output_file(fragment.text, output_filename, append=append)
    return fragment.count


# --- Argument parsing and main entry point ---

def build_options(args):
    """Build ConverterOptions from parsed arguments (preset first, flags override)."""
    options = ConverterOptions()
    if args.preset:
        options = apply_preset(options, args.preset)

    overrides = {}
    if args.backgroundcolor is not None:
        overrides['background_color'] = parse_color(args.backgroundcolor)
    if args.mode is not None:
        overrides['mode'] = MODE_ALIASES.get(args.mode, args.mode)
    if args.varname is not None:
        overrides['variable_name'] = args.varname
    if args.vartype is not None:
        overrides['variable_type'] = args.vartype
    if args.invertcolors:
        overrides['invert_colors'] = True
    if args.includedimensions:
        overrides['include_dimensions'] = True
    if args.ascii:
        overrides['create_ascii_art'] = True
    return options._replace(**overrides)


def make_parser():
    parser = argparse.ArgumentParser(description="ImageConverter - creates C source files from images")
    parser.add_argument('-p', '--preset', choices=sorted(PRESETS),
                        help='Use an option preset for the given target.')
    parser.add_argument('-c', '--backgroundcolor',
                        help='Background color for the target image (#RRGGBB, 0xRRGGBB or a color name).')
    parser.add_argument('-m', '--mode', choices=MODES + tuple(MODE_ALIASES),
                        help='Output format: rgb565 for 16 bit color images, monoh or monov for '
                             'monochrome images (grouped horizontally or vertically).')
    parser.add_argument('-v', '--varname',
                        help='Variable name to generate. Derived from the file name when omitted.')
    parser.add_argument('-t', '--vartype',
                        help='C type expression used in the generated source code.')
    target = parser.add_mutually_exclusive_group()
    target.add_argument('-o', '--outputfile',
                        help='Output file. All converted images are written to this one file.')
    target.add_argument('-e', '--directory',
                        help='Output directory for generated files.')
    parser.add_argument('-i', '--invertcolors', action='store_true',
                        help='Invert the color reduced image.')
    parser.add_argument('-d', '--includedimensions', action='store_true',
                        help='Start the generated array with the image dimensions.')
    parser.add_argument('-a', '--ascii', action='store_true',
                        help='Include an ASCII representation of the image as a comment.')
    parser.add_argument('files', nargs='+', help='Input image files')
    return parser


def main(argv=None):
    args = make_parser().parse_args(argv)

    try:
        options = build_options(args)

        append = False
        if args.outputfile:
            # Start from an empty file, every image is appended to it
            if os.path.exists(args.outputfile):
                os.remove(args.outputfile)
            append = True
        elif args.directory:
            os.makedirs(args.directory, exist_ok=True)

        for filename in args.files:
            if args.outputfile:
                output_filename = args.outputfile
            elif args.directory:
                output_filename = os.path.join(args.directory, default_output_filename(filename, False))
            else:
                output_filename = default_output_filename(filename)

            count = convert_file(filename, output_filename, options, append=append)
            print(f"Converted {filename} -> {output_filename} ({options.mode}, {count} bytes)")
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
