"""
EPUB content → PDF pages
  - PdfAssembler: reportlab canvas, embedded font, placement log, final bytes
  - PageRenderer: consumes one chapter's content events, wraps text with real
    font metrics, scales images and decides page breaks
Vertical positions are kept as offsets from the page top (y grows downwards)
and converted to reportlab's bottom-up coordinates only when drawing.
"""
import io
from collections import namedtuple

from PIL import Image as PILImage
from PIL import UnidentifiedImageError
from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from epub2pdf.errors import ImagePlacementFailure
from epub2pdf.fonts import register_font
from epub2pdf.linearizer import Image, Newline, Text
from epub2pdf.log import get_logger
from epub2pdf.paths import resolve_path

logger = get_logger(__name__)

Placement = namedtuple('Placement', ['kind', 'page', 'x', 'y', 'width', 'height', 'text', 'chapter'])
ChapterMark = namedtuple('ChapterMark', ['chapter', 'page', 'y'])

DEFAULT_FONT_SIZE = 12
DEFAULT_MARGIN = 57
DEFAULT_LINE_HEIGHT = 20
DEFAULT_PREVIEW_CHARS = 15000


# ============================================================
# Utilities
# ============================================================
def _safe_text(text):
    """Drop zero-width marks, variation selectors and control characters."""
    if not text:
        return ''
    cleaned = []
    for ch in text:
        cp = ord(ch)
        if cp < 0x20 or 0x200B <= cp <= 0x200D or 0xFE00 <= cp <= 0xFE0F or cp == 0xFEFF:
            continue
        cleaned.append(ch)
    return ''.join(cleaned)


def image_format_for(path):
    """Output format from the file extension (substring match, default JPEG)."""
    ext = path.rsplit('.', 1)[-1].lower() if '.' in path else 'jpg'
    fmt = 'JPEG'
    if 'png' in ext:
        fmt = 'PNG'
    if 'webp' in ext:
        fmt = 'WEBP'
    if 'bmp' in ext:
        fmt = 'BMP'
    return fmt


def scale_factor(intrinsic_width, content_width):
    """Images only ever shrink to the content width, never grow."""
    return min(content_width / intrinsic_width, 1)


def decode_image(data, fmt):
    """
    Decode with the extension's format first, then let Pillow sniff the bytes
    (EPUBs regularly ship PNGs named .jpg).
    """
    try:
        img = PILImage.open(io.BytesIO(data), formats=(fmt,))
    except UnidentifiedImageError:
        logger.debug('image_format_mismatch', expected=fmt)
        img = PILImage.open(io.BytesIO(data))
    img.load()
    if img.mode not in ('RGB', 'RGBA', 'L', 'CMYK'):
        has_alpha = img.mode in ('LA', 'PA') or 'transparency' in img.info
        img = img.convert('RGBA' if has_alpha else 'RGB')
    return img


def wrap_text(text, max_width, char_width):
    """
    Word wrap by real glyph widths. Words wider than the line are broken by
    characters, which also covers CJK text without spaces.
    """
    lines = []
    current = ''
    current_w = 0.0
    space_w = char_width(' ')

    for word in text.split(' '):
        if not word:
            continue
        word_w = sum(char_width(ch) for ch in word)
        if current and current_w + space_w + word_w <= max_width:
            current += ' ' + word
            current_w += space_w + word_w
            continue
        if current:
            lines.append(current)
            current, current_w = '', 0.0
        if word_w <= max_width:
            current, current_w = word, word_w
            continue
        for ch in word:
            w = char_width(ch)
            if current and current_w + w > max_width:
                lines.append(current)
                current, current_w = ch, w
            else:
                current += ch
                current_w += w
    if current:
        lines.append(current)
    return lines


# ============================================================
# Output assembler
# ============================================================
class PdfAssembler:
    """Owns the canvas; every drawing call is recorded in `placements`."""

    def __init__(self, font_data, config=None, title=None):
        self.config = config or {}
        self.font_name = register_font(font_data)
        self.font_size = self.config.get('pdf_font_size', DEFAULT_FONT_SIZE)
        self.page_width, self.page_height = A4
        self.page_numbers = self.config.get('pdf_page_numbers', True)
        self._widths = {}

        self._buf = io.BytesIO()
        self._canvas = canvas.Canvas(self._buf, pagesize=A4)
        if title:
            self._canvas.setTitle(_safe_text(title))
        self._canvas.setFont(self.font_name, self.font_size)

        self.page_count = 1
        self.placements = []
        self.chapter_marks = []
        self.current_chapter = None
        self._finished = None

    def char_width(self, ch):
        w = self._widths.get(ch)
        if w is None:
            w = pdfmetrics.stringWidth(ch, self.font_name, self.font_size)
            self._widths[ch] = w
        return w

    def string_width(self, text):
        return sum(self.char_width(ch) for ch in text)

    def _draw_page_number(self):
        if not self.page_numbers:
            return
        c = self._canvas
        c.setFont('Helvetica', 8)
        c.setFillColor(HexColor('#aaaaaa'))
        c.drawCentredString(self.page_width / 2, 22, str(self.page_count))
        c.setFillColor(HexColor('#000000'))

    def new_page(self):
        """Close the current page; the new page starts with the book font."""
        self._draw_page_number()
        self._canvas.showPage()
        self.page_count += 1
        self._canvas.setFont(self.font_name, self.font_size)

    def mark_chapter(self, chapter, y):
        self.current_chapter = chapter
        self.chapter_marks.append(ChapterMark(chapter, self.page_count, y))

    def draw_line(self, text, x, y):
        self._canvas.setFont(self.font_name, self.font_size)
        self._canvas.drawString(x, self.page_height - y, text)
        self.placements.append(Placement('text', self.page_count, x, y,
                                         self.string_width(text), 0, text,
                                         self.current_chapter))

    def draw_image(self, img, x, y, width, height):
        self._canvas.drawImage(ImageReader(img), x, self.page_height - y - height,
                               width=width, height=height, mask='auto')
        self.placements.append(Placement('image', self.page_count, x, y,
                                         width, height, None, self.current_chapter))

    def finish(self):
        """Serialize once; later calls return the same bytes."""
        if self._finished is None:
            self._draw_page_number()
            self._canvas.save()
            self._finished = self._buf.getvalue()
        return self._finished


# ============================================================
# Paginator
# ============================================================
class PaginatorState:
    def __init__(self, top):
        self.top = top
        self.y = top
        self.text_buffer = ''
        self.preview = ''

    def reset_page(self):
        self.y = self.top


class PageRenderer:
    def __init__(self, assembler, archive, config=None):
        self.config = config or {}
        self.assembler = assembler
        self.archive = archive
        self.margin = self.config.get('pdf_margin', DEFAULT_MARGIN)
        self.line_height = self.config.get('pdf_line_height', DEFAULT_LINE_HEIGHT)
        self.preview_chars = self.config.get('preview_chars', DEFAULT_PREVIEW_CHARS)
        self.page_height = assembler.page_height
        self.bottom = self.page_height - self.margin
        self.content_width = assembler.page_width - self.margin * 2
        self.state = PaginatorState(self.margin)

    @property
    def text_preview(self):
        return self.state.preview

    # ──────────────────────────────────────────────
    # Page management
    # ──────────────────────────────────────────────
    def _new_page(self, state):
        self.assembler.new_page()
        state.reset_page()

    def _at_page_top(self, state):
        return state.y <= state.top

    # ──────────────────────────────────────────────
    # Text
    # ──────────────────────────────────────────────
    def _append_preview(self, state, text):
        remaining = self.preview_chars - len(state.preview)
        if remaining > 0:
            state.preview += (text + '\n')[:remaining]

    def _flush(self, state):
        clean = state.text_buffer.strip()
        state.text_buffer = ''
        if not clean:
            return
        lines = wrap_text(_safe_text(clean), self.content_width, self.assembler.char_width)
        for line in lines:
            if state.y + self.line_height > self.bottom:
                self._new_page(state)
            self.assembler.draw_line(line, self.margin, state.y)
            state.y += self.line_height
        self._append_preview(state, clean)

    def _newline(self, state):
        state.y += self.line_height * 0.5
        if state.y > self.bottom:
            self._new_page(state)

    # ──────────────────────────────────────────────
    # Images
    # ──────────────────────────────────────────────
    def _draw_image(self, state, img_path, data):
        try:
            img = decode_image(data, image_format_for(img_path))
            width, height = img.size
            if not width or not height:
                raise ValueError('image has no pixels')
            scale = scale_factor(width, self.content_width)
            final_w, final_h = width * scale, height * scale

            if state.y + final_h > self.bottom and not self._at_page_top(state):
                self._new_page(state)

            self.assembler.draw_image(img, self.margin, state.y, final_w, final_h)
            state.y += final_h + self.line_height
        except Exception as e:
            raise ImagePlacementFailure(img_path, str(e)) from e

    def _image(self, state, href, chapter_path):
        img_path = resolve_path(chapter_path, href)
        if not img_path:
            return
        data = self.archive.read_bytes(img_path)
        if data is None:
            logger.warning('image_not_in_archive', path=img_path)
            return
        try:
            self._draw_image(state, img_path, data)
        except ImagePlacementFailure as e:
            logger.warning('image_skipped', path=e.path, error=e.reason)

    # ──────────────────────────────────────────────
    # Chapter
    # ──────────────────────────────────────────────
    def render_chapter(self, events, chapter_path, chapter=None):
        """Lay out one chapter's events, then separate it from the next one."""
        state = self.state
        self.assembler.mark_chapter(chapter if chapter is not None else chapter_path, state.y)

        for event in events:
            if isinstance(event, Text):
                state.text_buffer += event.value
                continue
            self._flush(state)
            if isinstance(event, Newline):
                self._newline(state)
            elif isinstance(event, Image):
                self._image(state, event.href, chapter_path)

        self._flush(state)

        if state.y < self.bottom:
            state.y += self.line_height * 2
        else:
            self._new_page(state)
