"""
EPUB conversion errors
Archive/package level errors are fatal for one file; image and chapter
resource errors are recovered inside the renderer.
"""


class ConversionError(Exception):
    """Base class for every failure raised while converting one EPUB."""


class MalformedArchive(ConversionError):
    """Not a zip, or the container descriptor / package document is missing."""


class NoChapters(ConversionError):
    """The spine resolved to zero entries."""


class FontUnavailable(ConversionError):
    """No embeddable TrueType font could be obtained from any source."""


class ImagePlacementFailure(ConversionError):
    """A single image could not be decoded or drawn."""

    def __init__(self, path, reason):
        super().__init__(f'Could not place image {path}: {reason}')
        self.path = path
        self.reason = reason


class ChapterResourceMissing(ConversionError):
    """A spine item points at an archive entry that does not exist."""

    def __init__(self, idref, path):
        super().__init__(f'Chapter {idref} missing from archive: {path}')
        self.idref = idref
        self.path = path
