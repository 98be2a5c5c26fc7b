#!/usr/bin/env python3
"""
Parse C source arrays written by convert_image.py and render them to PNG.

Each array is decoded with the inverse of the encoder that produced it:
- 0xHHHH words: rgb565, row by row
- 0xHH bytes:   monov, bands of 8 rows, top pixel in bit 0
- B........:    monoh, 8 pixels per byte, left pixel in bit 7

Usage:
    python render_image_array.py logo.c output_dir [--width W --height H]
"""
import os
import re
import argparse

import numpy as np

from convert_image import (
    ASCII_PREFIX,
    MODE_MONO_HORIZONTAL,
    MODE_MONO_VERTICAL,
    MODE_RGB565,
    ReducedImage,
    reduced_size,
    reduced_to_image,
)

DECLARATION_RE = re.compile(r'^(?P<type>.*?)\s*(?P<name>[A-Za-z0-9_\-]*)\[\]\s*=\s*\{\s*$')


def parse_source_fragments(text):
    """Split a C source text into the arrays it declares.

    Returns a list of dicts with variable_type, variable_name, ascii_art,
    dimensions (tuple or None) and tokens.
    """
    fragments = []
    ascii_art = []
    current = None

    for line in text.splitlines():
        stripped = line.strip()
        if current is None:
            if line.startswith(ASCII_PREFIX):
                ascii_art.append(line[len(ASCII_PREFIX):])
                continue
            match = DECLARATION_RE.match(stripped)
            if match:
                current = {
                    'variable_type': match.group('type'),
                    'variable_name': match.group('name'),
                    'ascii_art': ascii_art,
                    'dimensions': None,
                    'tokens': [],
                }
                ascii_art = []
            elif stripped:
                # Anything else between arrays resets the pending comment block
                ascii_art = []
            continue

        if stripped == '};':
            fragments.append(current)
            current = None
            continue
        current['tokens'].extend(t.strip() for t in stripped.split(',') if t.strip())

    if current is not None:
        raise ValueError(f"Unterminated array: {current['variable_name'] or '<unnamed>'}")

    for fragment in fragments:
        tokens = fragment['tokens']
        # A leading pair of plain decimals is the dimensions header
        if len(tokens) >= 2 and tokens[0].isdigit() and tokens[1].isdigit():
            fragment['dimensions'] = (int(tokens[0]), int(tokens[1]))
            fragment['tokens'] = tokens[2:]
    return fragments


def detect_mode(tokens):
    """Guess the conversion mode from the token format."""
    if not tokens:
        raise ValueError("Cannot detect mode of an empty array")
    token = tokens[0]
    if re.fullmatch(r'B[01]{8}', token):
        return MODE_MONO_HORIZONTAL
    if re.fullmatch(r'0x[0-9A-Fa-f]{4}', token):
        return MODE_RGB565
    if re.fullmatch(r'0x[0-9A-Fa-f]{2}', token):
        return MODE_MONO_VERTICAL
    raise ValueError(f"Unrecognized data token: {token!r}")


def decode_tokens(tokens, mode, width, height):
    """Decode data tokens back into a ReducedImage of the padded size."""
    width, height = reduced_size(width, height, mode)

    if mode == MODE_RGB565:
        expected = width * height
    elif mode == MODE_MONO_VERTICAL:
        expected = width * height // 8
    else:
        expected = width // 8 * height
    if len(tokens) != expected:
        raise ValueError(f"Expected {expected} tokens for {width}x{height} {mode}, got {len(tokens)}")

    if mode == MODE_RGB565:
        words = np.array([int(t, 16) for t in tokens], dtype=np.uint16).reshape(height, width)
        pixels = np.stack([(words >> 11) & 0x1F, (words >> 5) & 0x3F, words & 0x1F], axis=-1)
        return ReducedImage(mode, width, height, pixels.astype(np.uint8))

    if mode == MODE_MONO_VERTICAL:
        packed = np.array([int(t, 16) for t in tokens], dtype=np.uint8).reshape(height // 8, width)
        pixels = np.unpackbits(packed, axis=0, bitorder='little')
    else:
        packed = np.array([int(t[1:], 2) for t in tokens], dtype=np.uint8).reshape(height, width // 8)
        pixels = np.unpackbits(packed, axis=1, bitorder='big')
    return ReducedImage(mode, width, height, pixels)


def render_image_arrays(input_file, output_dir, width=None, height=None, progress_callback=None):
    """
    Render every array found in a generated C source file to PNG.

    Args:
        input_file: Path to the generated .c/.h file
        output_dir: Directory to save output PNGs
        width, height: Image size for arrays without a dimensions header
        progress_callback: Optional callback(current, total, message)

    Returns:
        List of written PNG paths
    """
    os.makedirs(output_dir, exist_ok=True)

    with open(input_file, 'r', encoding='utf-8') as f:
        fragments = parse_source_fragments(f.read())
    print(f"Found {len(fragments)} array(s) in {input_file}")

    written = []
    used_names = set()
    for index, fragment in enumerate(fragments):
        name = fragment['variable_name'] or f"array_{index}"
        # Repeated variable names get the array index appended
        while name in used_names:
            name = f"{name}_{index}"
        used_names.add(name)
        dimensions = fragment['dimensions'] or (width, height)
        if None in dimensions:
            raise ValueError(f"No dimensions for {name}; pass --width and --height")

        mode = detect_mode(fragment['tokens'])
        reduced = decode_tokens(fragment['tokens'], mode, *dimensions)
        output_path = os.path.join(output_dir, f"{name}.png")
        reduced_to_image(reduced).save(output_path)
        written.append(output_path)

        message = f"Rendered {name}: {reduced.width}x{reduced.height} {mode} -> {output_path}"
        print(message)
        if progress_callback:
            progress_callback(index + 1, len(fragments), message)
    return written


def main():
    parser = argparse.ArgumentParser(description="Render C image arrays created by convert_image.py to PNG")
    parser.add_argument('input', help='Generated C source file')
    parser.add_argument('output_dir', help='Output directory for PNG files')
    parser.add_argument('--width', type=int, help='Image width for arrays without dimensions')
    parser.add_argument('--height', type=int, help='Image height for arrays without dimensions')
    args = parser.parse_args()

    render_image_arrays(args.input, args.output_dir, width=args.width, height=args.height)


if __name__ == "__main__":
    main()
