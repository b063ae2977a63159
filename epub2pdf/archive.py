"""
EPUB archive access
Opens the zip container and reads named entries as text or bytes.
"""
import io
import zipfile

from epub2pdf.errors import MalformedArchive


class EpubArchive:
    """Read-only view over the zip entries of one EPUB."""

    def __init__(self, source):
        if isinstance(source, (bytes, bytearray)):
            source = io.BytesIO(source)
        try:
            self._zip = zipfile.ZipFile(source, 'r')
        except (zipfile.BadZipFile, OSError) as e:
            raise MalformedArchive(f'Invalid EPUB: not a zip archive ({e})') from e
        self._names = set(self._zip.namelist())

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        self._zip.close()

    def names(self):
        return sorted(self._names)

    def has(self, name):
        return name in self._names

    def read_bytes(self, name):
        """Entry bytes, or None when the entry is absent"""
        if name not in self._names:
            return None
        return self._zip.read(name)

    def read_text(self, name, encoding='utf-8'):
        data = self.read_bytes(name)
        if data is None:
            return None
        return data.decode(encoding, errors='replace')
