"""
Chapter markup → flat content events
Walks the XHTML tree depth-first and produces Text / Image / Newline events in
document order. The renderer consumes them strictly in that order.
"""
import enum
import re
from collections import namedtuple

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

Text = namedtuple('Text', ['value'])
Image = namedtuple('Image', ['href'])
Newline = namedtuple('Newline', [])

NEWLINE = Newline()

_WHITESPACE_RE = re.compile(r'\s+')


class ElementCategory(enum.Enum):
    SKIP = 'skip'
    IMAGE = 'image'
    SVG = 'svg'
    HEADING = 'heading'
    BLOCK = 'block'
    BREAK = 'break'
    INLINE = 'inline'


_CATEGORIES = {
    'head': ElementCategory.SKIP,
    'style': ElementCategory.SKIP,
    'script': ElementCategory.SKIP,
    'title': ElementCategory.SKIP,
    'meta': ElementCategory.SKIP,
    'link': ElementCategory.SKIP,
    'img': ElementCategory.IMAGE,
    'image': ElementCategory.IMAGE,
    'svg': ElementCategory.SVG,
    'h1': ElementCategory.HEADING,
    'h2': ElementCategory.HEADING,
    'h3': ElementCategory.HEADING,
    'h4': ElementCategory.HEADING,
    'h5': ElementCategory.HEADING,
    'h6': ElementCategory.HEADING,
    'p': ElementCategory.BLOCK,
    'div': ElementCategory.BLOCK,
    'li': ElementCategory.BLOCK,
    'blockquote': ElementCategory.BLOCK,
    'section': ElementCategory.BLOCK,
    'article': ElementCategory.BLOCK,
    'br': ElementCategory.BREAK,
}


def categorize(tag_name):
    """Element category from a (possibly prefixed) tag name."""
    local = (tag_name or '').lower().rsplit(':', 1)[-1]
    return _CATEGORIES.get(local, ElementCategory.INLINE)


def _image_ref(el):
    return el.get('src') or el.get('xlink:href')


def _svg_image_ref(svg):
    for el in svg.descendants:
        if isinstance(el, Tag) and categorize(el.name) is ElementCategory.IMAGE:
            ref = _image_ref(el)
            if ref:
                return ref
    return None


def _collapse(text):
    collapsed = _WHITESPACE_RE.sub(' ', text)
    if collapsed.strip():
        return collapsed
    return None


def _walk(node, events):
    if isinstance(node, NavigableString):
        if isinstance(node, PreformattedString):
            return
        text = _collapse(str(node))
        if text:
            events.append(Text(text))
        return

    if not isinstance(node, Tag):
        return

    category = categorize(node.name)

    if category is ElementCategory.SKIP:
        return
    if category is ElementCategory.IMAGE:
        ref = _image_ref(node)
        if ref:
            events.append(Image(ref))
        return
    if category is ElementCategory.SVG:
        ref = _svg_image_ref(node)
        if ref:
            events.append(Image(ref))
        return
    if category is ElementCategory.BREAK:
        events.append(NEWLINE)
        return

    if category is ElementCategory.HEADING:
        events.append(NEWLINE)
        events.append(NEWLINE)

    for child in node.children:
        _walk(child, events)

    if category in (ElementCategory.HEADING, ElementCategory.BLOCK):
        events.append(NEWLINE)


def linearize(markup):
    """
    One chapter's markup (str or bytes) → list of content events
    Traversal starts at <body>, or the whole document when there is none.
    """
    soup = BeautifulSoup(markup, 'html.parser')
    root = soup.body or soup
    events = []
    _walk(root, events)
    return events
