"""
EPUB package document handling
  - container.xml → package document (OPF) path
  - OPF → manifest (id → href) + spine (reading order)
Real-world EPUBs are often sloppy with namespaces, so every lookup runs a
strict pass first and a local-name pass second.
"""
import re

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as ET

from epub2pdf.errors import MalformedArchive, NoChapters
from epub2pdf.log import get_logger

logger = get_logger(__name__)

CONTAINER_PATH = 'META-INF/container.xml'

_FULL_PATH_RE = re.compile(r'full-path="([^"]+)"')
_ATTR_RE = re.compile(r'([\w:.-]+)\s*=\s*(["\'])(.*?)\2', re.DOTALL)


def _local_name(tag):
    if not isinstance(tag, str):
        return ''
    return tag.rsplit('}', 1)[-1].rsplit(':', 1)[-1]


def _parse_xml(data):
    try:
        return ET.fromstring(data)
    except (ET.ParseError, DefusedXmlException) as e:
        logger.warning('xml_parse_failed', error=str(e))
        return None


# ============================================================
# container.xml
# ============================================================
def locate_package_path(container_data):
    """full-path of the rootfile declared by container.xml"""
    if container_data is None:
        raise MalformedArchive(f'Invalid EPUB: Missing {CONTAINER_PATH}')

    root = _parse_xml(container_data)
    if root is not None:
        rootfile = root.find('.//{*}rootfile')
        if rootfile is None:
            rootfile = root.find('.//rootfile')
        if rootfile is not None and rootfile.get('full-path'):
            return rootfile.get('full-path')

    text = container_data.decode('utf-8', errors='replace') \
        if isinstance(container_data, bytes) else container_data
    match = _FULL_PATH_RE.search(text)
    if not match:
        raise MalformedArchive('Invalid EPUB: Could not find OPF path')
    return match.group(1)


def package_directory(package_path):
    if '/' not in package_path:
        return ''
    return package_path[:package_path.rindex('/') + 1]


# ============================================================
# OPF
# ============================================================
def _collect(root, tag, parent_tag):
    """strict lookup, then children of the element locally named parent_tag"""
    found = list(root.iter(tag))
    if found:
        return found
    for el in root.iter():
        if _local_name(el.tag) == parent_tag:
            return [child for child in el if _local_name(child.tag) == tag]
    return []


def _scan_tags(text, tag):
    """Regex scan for documents the XML parser rejects."""
    pattern = re.compile(r'<(?:[\w.-]+:)?%s\b([^>]*)>' % tag)
    entries = []
    for match in pattern.finditer(text):
        attrs = {name.rsplit(':', 1)[-1]: value
                 for name, _, value in _ATTR_RE.findall(match.group(1))}
        entries.append(attrs)
    return entries


def _find_title(root):
    for el in root.iter():
        if _local_name(el.tag) == 'title' and el.text and el.text.strip():
            return el.text.strip()
    return None


def parse_package(data):
    """OPF → (manifest, spine, title). Raises NoChapters on an empty spine."""
    manifest = {}
    spine = []
    title = None

    root = _parse_xml(data)
    if root is not None:
        items = [item.attrib for item in _collect(root, 'item', 'manifest')]
        itemrefs = [ref.attrib for ref in _collect(root, 'itemref', 'spine')]
        title = _find_title(root)
    else:
        logger.warning('opf_regex_fallback')
        text = data.decode('utf-8', errors='replace') if isinstance(data, bytes) else data
        items = _scan_tags(text, 'item')
        itemrefs = _scan_tags(text, 'itemref')

    for attrs in items:
        item_id = attrs.get('id')
        href = attrs.get('href')
        if item_id and href:
            manifest[item_id] = href

    for attrs in itemrefs:
        idref = attrs.get('idref')
        if idref:
            spine.append(idref)

    logger.info('package_parsed', chapters=len(spine), resources=len(manifest))
    if not spine:
        raise NoChapters('Could not find any chapters in this EPUB. '
                         'File structure may be unsupported.')
    return manifest, spine, title

