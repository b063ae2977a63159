import io
import zipfile

from PIL import Image as PILImage

CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="{opf_path}" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

OPF_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="3.0" unique-identifier="uid">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:title>{title}</dc:title>
  </metadata>
  <manifest>
{items}
  </manifest>
  <spine>
{itemrefs}
  </spine>
</package>
"""

XHTML_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:xlink="http://www.w3.org/1999/xlink">
<head><title>{title}</title><style>p {{ margin: 0 }}</style></head>
<body>{body}</body>
</html>
"""


def build_opf(chapters, title='Test Book', spine=None):
    """chapters: list of (id, href); spine defaults to the chapter ids"""
    items = '\n'.join(
        f'    <item id="{cid}" href="{href}" media-type="application/xhtml+xml"/>'
        for cid, href in chapters)
    ids = spine if spine is not None else [cid for cid, _ in chapters]
    itemrefs = '\n'.join(f'    <itemref idref="{cid}"/>' for cid in ids)
    return OPF_TEMPLATE.format(title=title, items=items, itemrefs=itemrefs)


def xhtml(body, title='Chapter'):
    return XHTML_TEMPLATE.format(title=title, body=body)


def make_epub(chapters, opf_path='OEBPS/content.opf', spine=None, extra=None,
              container=True, opf=None, title='Test Book'):
    """
    chapters: list of (id, href, body_html); hrefs are relative to the OPF
    extra: {archive path: bytes} added verbatim (images, ...)
    """
    opf_dir = opf_path.rsplit('/', 1)[0] + '/' if '/' in opf_path else ''
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, 'w') as zf:
        zf.writestr('mimetype', 'application/epub+zip')
        if container:
            zf.writestr('META-INF/container.xml', CONTAINER_XML.format(opf_path=opf_path))
        if opf is None:
            opf = build_opf([(cid, href) for cid, href, _ in chapters], title=title, spine=spine)
        zf.writestr(opf_path, opf)
        for cid, href, body in chapters:
            if body is not None:
                zf.writestr(opf_dir + href, xhtml(body, title=cid))
        for path, data in (extra or {}).items():
            zf.writestr(path, data)
    return buf.getvalue()


def image_bytes(width, height, fmt='PNG', color=(200, 30, 30)):
    buf = io.BytesIO()
    PILImage.new('RGB', (width, height), color).save(buf, format=fmt)
    return buf.getvalue()
