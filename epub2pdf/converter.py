"""
EPUB → PDF conversion pipeline
archive → container.xml → OPF (manifest + spine) → font → chapters in spine
order → PDF bytes + plain-text preview
"""
from collections import namedtuple
from urllib.parse import unquote

from config import load_config
from epub2pdf.archive import EpubArchive
from epub2pdf.errors import ChapterResourceMissing, MalformedArchive
from epub2pdf.fonts import FontCache, FontSource
from epub2pdf.linearizer import linearize
from epub2pdf.log import get_logger
from epub2pdf.package import CONTAINER_PATH, locate_package_path, package_directory, parse_package
from epub2pdf.pdf_generator import PageRenderer, PdfAssembler

logger = get_logger(__name__)

PROGRESS_START = 1
PROGRESS_ARCHIVE_OPENED = 5
PROGRESS_PACKAGE_LOCATED = 10
PROGRESS_PACKAGE_PARSED = 15
PROGRESS_PARSING_DONE = 20
PROGRESS_RENDERING_DONE = 95
PROGRESS_FINALIZING = 98
PROGRESS_DONE = 100

ConversionResult = namedtuple('ConversionResult', [
    'pdf_bytes', 'text_preview', 'page_count', 'chapters_rendered',
    'title', 'placements', 'chapter_marks',
])


class _Progress:
    """Clamps reports to a non-decreasing 0-100 sequence."""

    def __init__(self, callback=None):
        self.callback = callback
        self.value = 0

    def __call__(self, percent):
        percent = max(self.value, min(PROGRESS_DONE, int(percent)))
        self.value = percent
        if self.callback:
            self.callback(percent)


def default_font_source(config=None):
    cfg = config or load_config()
    return FontSource.remote(cfg.get('font_urls', []))


def _read_chapter(archive, idref, path):
    for candidate in (path, unquote(path)):
        data = archive.read_bytes(candidate)
        if data is not None:
            return data
    raise ChapterResourceMissing(idref, path)


def convert_epub_to_pdf(source, font_source=None, on_progress=None, config=None, font_cache=None):
    """
    Convert one EPUB (bytes, path or file object) into PDF bytes.
    Archive and package errors are raised before the font is fetched; a
    missing chapter or a broken image only costs that chapter or image.
    """
    cfg = config or load_config()
    progress = _Progress(on_progress)
    cache = font_cache if font_cache is not None else FontCache()
    if font_source is None:
        font_source = default_font_source(cfg)

    progress(PROGRESS_START)

    with EpubArchive(source) as archive:
        progress(PROGRESS_ARCHIVE_OPENED)

        package_path = locate_package_path(archive.read_bytes(CONTAINER_PATH))
        opf_data = archive.read_bytes(package_path)
        if opf_data is None:
            raise MalformedArchive(f'Invalid EPUB: OPF file missing ({package_path})')
        opf_dir = package_directory(package_path)
        progress(PROGRESS_PACKAGE_LOCATED)

        manifest, spine, title = parse_package(opf_data)
        progress(PROGRESS_PACKAGE_PARSED)

        font_data = cache.get(font_source)
        progress(PROGRESS_PARSING_DONE)

        assembler = PdfAssembler(font_data, cfg, title=title)
        renderer = PageRenderer(assembler, archive, cfg)

        total = len(spine)
        rendered = []
        for done, idref in enumerate(spine, 1):
            href = manifest.get(idref)
            if href is None:
                logger.debug('spine_item_not_in_manifest', idref=idref)
            else:
                chapter_path = opf_dir + href
                try:
                    markup = _read_chapter(archive, idref, chapter_path)
                except ChapterResourceMissing as e:
                    logger.warning('chapter_skipped', idref=e.idref, path=e.path)
                else:
                    renderer.render_chapter(linearize(markup), chapter_path, idref)
                    rendered.append(idref)

            span = PROGRESS_RENDERING_DONE - PROGRESS_PARSING_DONE
            progress(PROGRESS_PARSING_DONE + (done * span) // total)

        progress(PROGRESS_FINALIZING)
        pdf_bytes = assembler.finish()

    logger.info('conversion_done', chapters=len(rendered), pages=assembler.page_count)
    progress(PROGRESS_DONE)
    return ConversionResult(
        pdf_bytes=pdf_bytes,
        text_preview=renderer.text_preview,
        page_count=assembler.page_count,
        chapters_rendered=rendered,
        title=title,
        placements=assembler.placements,
        chapter_marks=assembler.chapter_marks,
    )
