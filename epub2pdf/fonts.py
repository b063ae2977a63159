"""
Font sources for PDF text
  - EMBEDDED: TrueType bytes supplied by the caller (uploaded .ttf)
  - REMOTE:   ordered list of URLs, first successful download wins
FontCache memoizes resolved bytes; whoever owns the cache decides its lifetime.
"""
import enum
import hashlib
import io
import struct

import requests
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFError, TTFont

from epub2pdf.errors import FontUnavailable
from epub2pdf.log import get_logger

logger = get_logger(__name__)

DOWNLOAD_TIMEOUT = 30


class FontSourceKind(enum.Enum):
    EMBEDDED = 'embedded'
    REMOTE = 'remote'


class FontSource:
    def __init__(self, kind, data=None, urls=()):
        self.kind = kind
        self.data = data
        self.urls = tuple(urls)

    @classmethod
    def embedded(cls, data):
        return cls(FontSourceKind.EMBEDDED, data=bytes(data))

    @classmethod
    def remote(cls, urls):
        return cls(FontSourceKind.REMOTE, urls=urls)

    @property
    def key(self):
        if self.kind is FontSourceKind.EMBEDDED:
            return ('embedded', hashlib.sha1(self.data).hexdigest())
        return ('remote',) + self.urls

    def __repr__(self):
        if self.kind is FontSourceKind.EMBEDDED:
            return f'FontSource.embedded(<{len(self.data)} bytes>)'
        return f'FontSource.remote({list(self.urls)!r})'


# ============================================================
# TrueType parsing / registration
# ============================================================
def font_name_for(data):
    return 'EpubFont-' + hashlib.sha1(data).hexdigest()[:10]


def load_truetype(data):
    """Parse TrueType bytes; FontUnavailable if they are not a usable font."""
    try:
        return TTFont(font_name_for(data), io.BytesIO(data))
    except (TTFError, ValueError, OSError, struct.error) as e:
        raise FontUnavailable(f'Invalid TrueType font: {e}') from e


def register_font(data):
    """Register the font with reportlab and return its name."""
    name = font_name_for(data)
    if name not in pdfmetrics.getRegisteredFontNames():
        pdfmetrics.registerFont(load_truetype(data))
    return name


def download_font(urls):
    """Try every URL in order; first response that parses as TrueType wins."""
    last_error = None
    for url in urls:
        try:
            logger.info('font_download', url=url)
            resp = requests.get(url, timeout=DOWNLOAD_TIMEOUT,
                                headers={'User-Agent': 'Mozilla/5.0'})
            if resp.status_code != 200:
                raise FontUnavailable(f'HTTP {resp.status_code}')
            load_truetype(resp.content)
            return resp.content
        except (requests.RequestException, FontUnavailable) as e:
            logger.warning('font_download_failed', url=url, error=str(e))
            last_error = e

    raise FontUnavailable(
        'Failed to download font. Please load a local .ttf font file '
        f'(e.g. Arial, SimHei) instead. Details: {last_error}')


class FontCache:
    """Memoizes font bytes per source for as long as the owner keeps it."""

    def __init__(self):
        self._fonts = {}

    def get(self, source):
        key = source.key
        if key in self._fonts:
            return self._fonts[key]
        if source.kind is FontSourceKind.EMBEDDED:
            load_truetype(source.data)
            data = source.data
        else:
            data = download_font(source.urls)
        self._fonts[key] = data
        return data

    def clear(self):
        self._fonts.clear()
