"""
Conversion queue
Files are converted one at a time on a single background thread. Each file
gets its own archive, canvas and paginator state, so a failure only marks that
file as ERROR and the queue moves on.
"""
import enum
import io
import threading
import uuid
import zipfile
from datetime import date

from epub2pdf.converter import convert_epub_to_pdf
from epub2pdf.errors import ConversionError
from epub2pdf.fonts import FontCache
from epub2pdf.log import get_logger

logger = get_logger(__name__)


class ConversionStatus(enum.Enum):
    IDLE = 'IDLE'
    QUEUED = 'QUEUED'
    PROCESSING = 'PROCESSING'
    COMPLETED = 'COMPLETED'
    ERROR = 'ERROR'


def pdf_name(name):
    if name.lower().endswith('.epub'):
        return name[:-5] + '.pdf'
    return name + '.pdf'


class EpubJob:
    def __init__(self, name, data):
        self.id = uuid.uuid4().hex[:8]
        self.name = name
        self.data = data
        self.size = len(data)
        self.status = ConversionStatus.IDLE
        self.progress = 0
        self.error_message = None
        self.summary = None
        self.result = None

    @property
    def pdf_name(self):
        return pdf_name(self.name)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'size': self.size,
            'status': self.status.value,
            'progress': self.progress,
            'error_message': self.error_message,
            'summary': self.summary,
            'page_count': self.result.page_count if self.result else None,
        }


class BatchConverter:
    def __init__(self, config=None, font_cache=None):
        self.config = config
        self.font_cache = font_cache if font_cache is not None else FontCache()
        self.font_source = None
        self._jobs = {}
        self._lock = threading.Lock()
        self._worker = None

    # ──────────────────────────────────────────────
    # Queue management
    # ──────────────────────────────────────────────
    def add_file(self, name, data):
        job = EpubJob(name, data)
        with self._lock:
            self._jobs[job.id] = job
        return job

    def get(self, job_id):
        with self._lock:
            return self._jobs.get(job_id)

    def jobs(self):
        with self._lock:
            return list(self._jobs.values())

    def remove(self, job_id):
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status in (ConversionStatus.QUEUED, ConversionStatus.PROCESSING):
                return False
            del self._jobs[job_id]
            return True

    def clear(self):
        """Drop every job that is not waiting or running."""
        with self._lock:
            for job_id, job in list(self._jobs.items()):
                if job.status not in (ConversionStatus.QUEUED, ConversionStatus.PROCESSING):
                    del self._jobs[job_id]

    def overall_progress(self):
        jobs = self.jobs()
        if not jobs:
            return 0
        return round(sum(j.progress for j in jobs) / len(jobs))

    @property
    def is_running(self):
        return self._worker is not None and self._worker.is_alive()

    # ──────────────────────────────────────────────
    # Conversion
    # ──────────────────────────────────────────────
    def _convert(self, job):
        job.status = ConversionStatus.PROCESSING
        job.progress = 0

        def on_progress(percent):
            job.progress = percent

        try:
            job.result = convert_epub_to_pdf(
                job.data,
                font_source=self.font_source,
                on_progress=on_progress,
                config=self.config,
                font_cache=self.font_cache,
            )
        except ConversionError as e:
            logger.warning('conversion_failed', file=job.name, error=str(e))
            job.status = ConversionStatus.ERROR
            job.error_message = str(e)
            job.progress = 0
            return
        except Exception as e:
            logger.exception('conversion_crashed', file=job.name)
            job.status = ConversionStatus.ERROR
            job.error_message = str(e) or 'Unknown error'
            job.progress = 0
            return

        job.status = ConversionStatus.COMPLETED
        job.progress = 100

    def run(self, jobs=None):
        """Convert the given (or all IDLE) jobs, one after another."""
        if jobs is None:
            with self._lock:
                jobs = [j for j in self._jobs.values() if j.status is ConversionStatus.IDLE]
                for job in jobs:
                    job.status = ConversionStatus.QUEUED
        for job in jobs:
            self._convert(job)
        return jobs

    def start(self):
        """Queue every IDLE job and convert them on a background thread."""
        if self.is_running:
            return []
        with self._lock:
            jobs = [j for j in self._jobs.values() if j.status is ConversionStatus.IDLE]
            for job in jobs:
                job.status = ConversionStatus.QUEUED
        if not jobs:
            return []
        self._worker = threading.Thread(target=self.run, args=(jobs,), daemon=True)
        self._worker.start()
        return jobs

    def join(self, timeout=None):
        if self._worker is not None:
            self._worker.join(timeout)

    # ──────────────────────────────────────────────
    # Downloads
    # ──────────────────────────────────────────────
    def completed(self):
        return [j for j in self.jobs() if j.status is ConversionStatus.COMPLETED and j.result]

    def zip_completed(self):
        """(filename, bytes) of a ZIP holding every completed PDF."""
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, 'w', zipfile.ZIP_DEFLATED) as zf:
            for job in self.completed():
                zf.writestr(job.pdf_name, job.result.pdf_bytes)
        return f'epub2pdf_batch_{date.today().isoformat()}.zip', buf.getvalue()
