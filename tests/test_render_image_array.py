import os

import numpy as np
import pytest
from PIL import Image

import convert_image as ci
import render_image_array as ria
from convert_image import ConverterOptions


SOURCE = (
    "// $ \n"
    "const uint8_t first[] = {\n"
    "8, 2, \n"
    "B10101010, \n"
    "B11110000\n"
    "};\n"
    "\n"
    "const unsigned short PROGMEM second[] = {\n"
    "0xF800, 0x07E0\n"
    "};\n"
    "\n"
)


def test_parse_source_fragments():
    first, second = ria.parse_source_fragments(SOURCE)

    assert first['variable_type'] == 'const uint8_t'
    assert first['variable_name'] == 'first'
    assert first['ascii_art'] == ['$ ']
    assert first['dimensions'] == (8, 2)
    assert first['tokens'] == ['B10101010', 'B11110000']

    assert second['variable_type'] == 'const unsigned short PROGMEM'
    assert second['ascii_art'] == []
    assert second['dimensions'] is None
    assert second['tokens'] == ['0xF800', '0x07E0']


def test_parse_unterminated_array():
    with pytest.raises(ValueError, match="Unterminated"):
        ria.parse_source_fragments("const uint8_t x[] = {\n0x00, 0x01\n")


@pytest.mark.parametrize("token,mode", [
    ("B00000001", ci.MODE_MONO_HORIZONTAL),
    ("0xF800", ci.MODE_RGB565),
    ("0x3C", ci.MODE_MONO_VERTICAL),
])
def test_detect_mode(token, mode):
    assert ria.detect_mode([token]) == mode


def test_detect_mode_rejects_unknown_tokens():
    with pytest.raises(ValueError):
        ria.detect_mode(["42"])


def test_decode_tokens_checks_count():
    with pytest.raises(ValueError, match="Expected 2 tokens"):
        ria.decode_tokens(["0x00"], ci.MODE_MONO_VERTICAL, 2, 8)


@pytest.mark.parametrize("mode", ci.MODES)
def test_decode_inverts_encoder(mode):
    rng = np.random.default_rng(11)
    img = Image.fromarray(rng.integers(0, 256, size=(9, 12, 3), dtype=np.uint8), 'RGB')
    options = ConverterOptions(mode=mode, include_dimensions=True, variable_name='pic')
    reduced = ci.reduce_image(img, options)

    fragment, = ria.parse_source_fragments(ci.create_source_code(img, options).text)
    decoded = ria.decode_tokens(fragment['tokens'], mode, *fragment['dimensions'])

    assert (decoded.width, decoded.height) == (reduced.width, reduced.height)
    assert np.array_equal(decoded.pixels, reduced.pixels)


def test_render_image_arrays(tmp_path):
    source = tmp_path / "images.h"
    source.write_text(SOURCE)

    written = ria.render_image_arrays(str(source), str(tmp_path / "out"), width=2, height=1)

    assert [os.path.basename(p) for p in written] == ['first.png', 'second.png']
    with Image.open(written[0]) as first:
        assert first.size == (8, 2)
        assert first.getpixel((0, 0)) and not first.getpixel((1, 0))
    with Image.open(written[1]) as second:
        assert second.convert('RGB').getpixel((0, 0)) == (255, 0, 0)
        assert second.convert('RGB').getpixel((1, 0)) == (0, 255, 0)


def test_render_requires_dimensions(tmp_path):
    source = tmp_path / "bare.c"
    source.write_text("const uint8_t bare[] = {\n0x01\n};\n")
    with pytest.raises(ValueError, match="No dimensions"):
        ria.render_image_arrays(str(source), str(tmp_path / "out"))


def test_render_reports_progress(tmp_path):
    source = tmp_path / "images.h"
    source.write_text(SOURCE)
    calls = []

    ria.render_image_arrays(str(source), str(tmp_path / "out"), width=2, height=1,
                            progress_callback=lambda *args: calls.append(args))

    assert [(current, total) for current, total, _ in calls] == [(1, 2), (2, 2)]
    assert calls[0][2].startswith("Rendered first:")
    assert calls[1][2].startswith("Rendered second:")


def test_render_keeps_arrays_with_repeated_names(tmp_path):
    first = tmp_path / "first.png"
    second = tmp_path / "second.png"
    Image.new('RGB', (8, 8), (255, 255, 255)).save(first)
    Image.new('RGB', (8, 8), (0, 0, 0)).save(second)
    source = tmp_path / "all.h"
    ci.main(['-m', 'monov', '-d', '-v', 'sprite', '-o', str(source), str(first), str(second)])

    written = ria.render_image_arrays(str(source), str(tmp_path / "out"))

    assert [os.path.basename(p) for p in written] == ['sprite.png', 'sprite_1.png']
    with Image.open(written[0]) as white, Image.open(written[1]) as black:
        assert white.getpixel((0, 0)) and not black.getpixel((0, 0))
