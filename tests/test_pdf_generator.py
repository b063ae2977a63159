import pytest

from epub2pdf.linearizer import NEWLINE, Image, Text
from epub2pdf.pdf_generator import (
    PageRenderer,
    PdfAssembler,
    image_format_for,
    scale_factor,
    wrap_text,
)
from helpers import image_bytes

LOREM = ('Lorem ipsum dolor sit amet, consectetur adipiscing elit, sed do eiusmod tempor '
         'incididunt ut labore et dolore magna aliqua. Ut enim ad minim veniam, quis nostrud '
         'exercitation ullamco laboris nisi ut aliquip ex ea commodo consequat. ')


class FakeArchive:
    def __init__(self, entries=None):
        self.entries = entries or {}

    def read_bytes(self, name):
        return self.entries.get(name)


@pytest.fixture
def assembler(font_bytes, config):
    return PdfAssembler(font_bytes, config, title='Test')


def make_renderer(assembler, config, entries=None):
    return PageRenderer(assembler, FakeArchive(entries), config)


def text_lines(assembler):
    return [p for p in assembler.placements if p.kind == 'text']


# ============================================================
# helpers
# ============================================================
@pytest.mark.parametrize('path, fmt', [
    ('OEBPS/a.png', 'PNG'),
    ('OEBPS/a.PNG', 'PNG'),
    ('OEBPS/a.apng', 'PNG'),
    ('OEBPS/a.webp', 'WEBP'),
    ('OEBPS/a.bmp', 'BMP'),
    ('OEBPS/a.jpg', 'JPEG'),
    ('OEBPS/a.jpeg', 'JPEG'),
    ('OEBPS/a.gif', 'JPEG'),
    ('OEBPS/noext', 'JPEG'),
])
def test_image_format_for(path, fmt):
    assert image_format_for(path) == fmt


def test_scale_factor_never_enlarges():
    assert scale_factor(100, 480) == 1
    assert scale_factor(960, 480) == 0.5


def test_wrap_text_respects_width():
    widths = {}

    def char_width(ch):
        return widths.setdefault(ch, 6.0)

    lines = wrap_text(LOREM * 3, 120, char_width)
    assert len(lines) > 5
    assert all(sum(char_width(c) for c in line) <= 120 for line in lines)
    assert ' '.join(lines).split() == (LOREM * 3).split()


def test_wrap_text_breaks_long_words_by_character():
    lines = wrap_text('x' * 50, 60, lambda ch: 6.0)
    assert lines == ['x' * 10] * 5


def test_wrap_text_handles_text_without_spaces():
    text = '天地玄黄宇宙洪荒日月盈昃辰宿列张'
    lines = wrap_text(text, 48, lambda ch: 12.0)
    assert lines == ['天地玄黄', '宇宙洪荒', '日月盈昃', '辰宿列张']


# ============================================================
# text flow
# ============================================================
def test_text_is_buffered_until_a_break(assembler, config):
    renderer = make_renderer(assembler, config)
    renderer.render_chapter([Text('Hello '), Text('world'), NEWLINE], 'OEBPS/ch.xhtml', 'c1')
    lines = text_lines(assembler)
    assert [p.text for p in lines] == ['Hello world']
    assert lines[0].y == config['pdf_margin']
    assert renderer.text_preview == 'Hello world\n'


def test_wrapped_lines_fit_content_width(assembler, config):
    renderer = make_renderer(assembler, config)
    renderer.render_chapter([Text(LOREM * 20), NEWLINE], 'OEBPS/ch.xhtml', 'c1')
    content_width = assembler.page_width - 2 * config['pdf_margin']
    lines = text_lines(assembler)
    assert len(lines) > 10
    assert all(p.width <= content_width for p in lines)
    assert all(p.x == config['pdf_margin'] for p in lines)


def test_long_text_breaks_pages_inside_margins(assembler, config):
    renderer = make_renderer(assembler, config)
    renderer.render_chapter([Text(LOREM * 200), NEWLINE], 'OEBPS/ch.xhtml', 'c1')
    margin = config['pdf_margin']
    bottom = assembler.page_height - margin
    assert assembler.page_count > 1
    for p in text_lines(assembler):
        assert margin <= p.y <= bottom - config['pdf_line_height']
    pages = [p.page for p in text_lines(assembler)]
    assert pages == sorted(pages)


def test_newline_adds_half_line(assembler, config):
    renderer = make_renderer(assembler, config)
    renderer.render_chapter([Text('a'), NEWLINE, Text('b'), NEWLINE], 'OEBPS/ch.xhtml', 'c1')
    a, b = text_lines(assembler)
    assert b.y - a.y == pytest.approx(config['pdf_line_height'] * 1.5)


def test_preview_is_capped(assembler, config):
    config['preview_chars'] = 100
    renderer = make_renderer(assembler, config)
    renderer.render_chapter([Text(LOREM), NEWLINE, Text(LOREM), NEWLINE], 'OEBPS/ch.xhtml', 'c1')
    assert len(renderer.text_preview) == 100
    assert renderer.text_preview == (LOREM.strip() + '\n' + LOREM)[:100]


def test_chapter_end_adds_spacing(assembler, config):
    renderer = make_renderer(assembler, config)
    renderer.render_chapter([Text('end')], 'OEBPS/ch1.xhtml', 'c1')
    renderer.render_chapter([Text('next')], 'OEBPS/ch2.xhtml', 'c2')
    first, second = text_lines(assembler)
    assert (first.chapter, second.chapter) == ('c1', 'c2')
    assert second.y == pytest.approx(first.y + 3 * config['pdf_line_height'])


def test_chapter_end_at_bottom_starts_new_page(assembler, config):
    renderer = make_renderer(assembler, config)
    renderer.state.y = renderer.bottom
    renderer.render_chapter([], 'OEBPS/ch1.xhtml', 'c1')
    assert assembler.page_count == 2
    assert renderer.state.y == config['pdf_margin']


# ============================================================
# images
# ============================================================
def test_large_image_is_scaled_down_keeping_aspect(assembler, config):
    entries = {'OEBPS/Images/big.png': image_bytes(1000, 500)}
    renderer = make_renderer(assembler, config, entries)
    renderer.render_chapter([Image('../Images/big.png')], 'OEBPS/Text/ch.xhtml', 'c1')
    [img] = [p for p in assembler.placements if p.kind == 'image']
    content_width = assembler.page_width - 2 * config['pdf_margin']
    assert img.width == pytest.approx(content_width)
    assert img.width / img.height == pytest.approx(2.0)
    assert img.x == config['pdf_margin']


def test_small_image_is_not_enlarged(assembler, config):
    entries = {'OEBPS/small.jpg': image_bytes(40, 30, fmt='JPEG')}
    renderer = make_renderer(assembler, config, entries)
    renderer.render_chapter([Image('small.jpg')], 'OEBPS/ch.xhtml', 'c1')
    [img] = [p for p in assembler.placements if p.kind == 'image']
    assert (img.width, img.height) == (40, 30)
    assert renderer.state.y == pytest.approx(
        config['pdf_margin'] + 30 + config['pdf_line_height'] * 3)


def test_image_flushes_pending_text_first(assembler, config):
    entries = {'OEBPS/a.png': image_bytes(10, 10)}
    renderer = make_renderer(assembler, config, entries)
    renderer.render_chapter([Text('caption'), Image('a.png')], 'OEBPS/ch.xhtml', 'c1')
    kinds = [p.kind for p in assembler.placements]
    assert kinds == ['text', 'image']


def test_image_that_does_not_fit_moves_to_next_page(assembler, config):
    entries = {'OEBPS/a.png': image_bytes(100, 300)}
    renderer = make_renderer(assembler, config, entries)
    renderer.state.y = renderer.bottom - 100
    renderer.render_chapter([Image('a.png')], 'OEBPS/ch.xhtml', 'c1')
    [img] = [p for p in assembler.placements if p.kind == 'image']
    assert img.page == 2
    assert img.y == config['pdf_margin']


def test_misnamed_image_is_still_decoded(assembler, config):
    entries = {'OEBPS/a.jpg': image_bytes(20, 20, fmt='PNG')}
    renderer = make_renderer(assembler, config, entries)
    renderer.render_chapter([Image('a.jpg')], 'OEBPS/ch.xhtml', 'c1')
    assert [p.kind for p in assembler.placements] == ['image']


def test_broken_and_missing_images_are_skipped(assembler, config):
    entries = {'OEBPS/broken.png': b'not an image'}
    renderer = make_renderer(assembler, config, entries)
    events = [Image('broken.png'), Image('missing.png'), Image('http://x/y.png'), Image(''),
              Text('still here'), NEWLINE]
    renderer.render_chapter(events, 'OEBPS/ch.xhtml', 'c1')
    assert [p.text for p in assembler.placements] == ['still here']
    assert text_lines(assembler)[0].y == config['pdf_margin']


def test_finish_produces_pdf_once(assembler, config):
    renderer = make_renderer(assembler, config)
    renderer.render_chapter([Text('x'), NEWLINE], 'OEBPS/ch.xhtml', 'c1')
    data = assembler.finish()
    assert data.startswith(b'%PDF')
    assert assembler.finish() is data


def test_newline_past_bottom_starts_new_page(assembler, config):
    renderer = make_renderer(assembler, config)
    renderer.state.y = renderer.bottom - 1
    renderer.render_chapter([NEWLINE, Text('x'), NEWLINE], 'OEBPS/ch.xhtml', 'c1')
    [line] = text_lines(assembler)
    assert line.page == 2
    assert line.y == config['pdf_margin']


def test_tall_image_at_page_top_stays_on_current_page(assembler, config):
    entries = {'OEBPS/tall.png': image_bytes(100, 2000)}
    renderer = make_renderer(assembler, config, entries)
    renderer._image(renderer.state, 'tall.png', 'OEBPS/ch.xhtml')
    [img] = [p for p in assembler.placements if p.kind == 'image']
    assert assembler.page_count == 1
    assert (img.page, img.y, img.height) == (1, config['pdf_margin'], 2000)
