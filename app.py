"""
Epub2Pdf - Flask server
EPUB → PDF batch conversion with AI summaries
"""
import io
import os

from flask import Flask, jsonify, request, send_file
from flask_cors import CORS

from config import load_config, save_config
from epub2pdf.ai_engine import summarize_book_content
from epub2pdf.batch import BatchConverter, ConversionStatus
from epub2pdf.errors import FontUnavailable
from epub2pdf.fonts import FontCache, FontSource
from epub2pdf.log import configure_logging, get_logger

logger = get_logger(__name__)

MESSAGES = {
    'en': {
        'not_found': 'File not found.',
        'epub_only': 'Please drop .epub files only.',
        'ttf_only': 'Please select a .ttf font file.',
        'font_loaded': 'Font loaded successfully! Conversion will now use this font.',
        'font_failed': 'Failed to load font.',
        'convert_first': 'Please convert the file first to extract text for analysis.',
        'nothing_to_convert': 'No files waiting for conversion.',
        'nothing_to_download': 'No converted files yet.',
        'saved': 'Settings saved.',
    },
    'zh': {
        'not_found': '找不到文件。',
        'epub_only': '请仅拖放 .epub 文件。',
        'ttf_only': '请选择 .ttf 字体文件。',
        'font_loaded': '字体加载成功！现在转换将使用此字体。',
        'font_failed': '字体加载失败。',
        'convert_first': '请先转换文件以提取文本进行分析。',
        'nothing_to_convert': '没有等待转换的文件。',
        'nothing_to_download': '还没有已转换的文件。',
        'saved': '设置已保存。',
    },
}

CONFIG_KEYS = [
    'font_urls', 'pdf_font_size', 'pdf_margin', 'pdf_line_height', 'pdf_page_numbers',
    'preview_chars', 'summary_chars', 'ai_model', 'gemini_api_key', 'language',
]


def _msg(key, language=None):
    lang = language or request.args.get('lang') or load_config().get('language', 'en')
    return MESSAGES.get(lang, MESSAGES['en'])[key]


_TRUE_STRINGS = ('true', '1', 'yes', 'on')
_FALSE_STRINGS = ('false', '0', 'no', 'off', '')


def _parse_flag(val):
    """JSON booleans, 0/1 or their string forms; anything else is invalid"""
    if isinstance(val, bool):
        return val
    if isinstance(val, int) and val in (0, 1):
        return bool(val)
    if isinstance(val, str):
        lowered = val.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError(f'not a boolean: {val!r}')


def create_app(config=None):
    app = Flask(__name__)
    CORS(app)

    # Font bytes stay cached for the life of the process
    converter = BatchConverter(config=config, font_cache=FontCache())
    app.config['BATCH'] = converter

    # ============================================================
    # File queue API
    # ============================================================
    @app.route('/api/files', methods=['GET'])
    def list_files():
        jobs = converter.jobs()
        return jsonify({
            'success': True,
            'files': [j.to_dict() for j in jobs],
            'overall_progress': converter.overall_progress(),
            'converting': converter.is_running,
            'custom_font': converter.font_source is not None,
        })

    @app.route('/api/files', methods=['POST'])
    def add_files():
        uploads = request.files.getlist('files')
        added, rejected = [], []
        for upload in uploads:
            name = upload.filename or ''
            if not name.lower().endswith('.epub'):
                rejected.append(name)
                continue
            job = converter.add_file(name, upload.read())
            added.append(job.to_dict())
        if not added:
            return jsonify({'success': False, 'error': _msg('epub_only'), 'rejected': rejected})
        return jsonify({'success': True, 'files': added, 'rejected': rejected})

    @app.route('/api/files/<job_id>', methods=['DELETE'])
    def remove_file(job_id):
        if not converter.remove(job_id):
            return jsonify({'success': False, 'error': _msg('not_found')})
        return jsonify({'success': True})

    @app.route('/api/files/clear', methods=['POST'])
    def clear_files():
        converter.clear()
        return jsonify({'success': True})

    # ============================================================
    # Conversion API
    # ============================================================
    @app.route('/api/convert', methods=['POST'])
    def start_conversion():
        """Convert every IDLE file in the background, one at a time."""
        jobs = converter.start()
        if not jobs:
            return jsonify({'success': False, 'error': _msg('nothing_to_convert')})
        return jsonify({'success': True, 'queued': [j.id for j in jobs]})

    @app.route('/api/progress/<job_id>')
    def get_progress(job_id):
        job = converter.get(job_id)
        if not job:
            return jsonify({'success': False, 'error': _msg('not_found')})
        return jsonify({'success': True, 'data': job.to_dict()})

    @app.route('/api/download/<job_id>')
    def download_file(job_id):
        job = converter.get(job_id)
        if not job or job.status is not ConversionStatus.COMPLETED:
            return jsonify({'success': False, 'error': _msg('not_found')}), 404
        return send_file(io.BytesIO(job.result.pdf_bytes), mimetype='application/pdf',
                         as_attachment=True, download_name=job.pdf_name)

    @app.route('/api/download_all')
    def download_all():
        completed = converter.completed()
        if not completed:
            return jsonify({'success': False, 'error': _msg('nothing_to_download')}), 404
        if len(completed) == 1:
            job = completed[0]
            return send_file(io.BytesIO(job.result.pdf_bytes), mimetype='application/pdf',
                             as_attachment=True, download_name=job.pdf_name)
        filename, data = converter.zip_completed()
        return send_file(io.BytesIO(data), mimetype='application/zip',
                         as_attachment=True, download_name=filename)

    # ============================================================
    # AI summary API
    # ============================================================
    @app.route('/api/analyze/<job_id>', methods=['POST'])
    def analyze(job_id):
        data = request.get_json(silent=True) or {}
        cfg = config or load_config()
        language = data.get('language') or cfg.get('language', 'en')
        job = converter.get(job_id)
        if not job:
            return jsonify({'success': False, 'error': _msg('not_found', language)})
        if not job.result or not job.result.text_preview:
            return jsonify({'success': False, 'error': _msg('convert_first', language)})

        result = summarize_book_content(job.result.text_preview, language, cfg)
        job.summary = f'{result.title}: {result.summary}'
        return jsonify({'success': True, 'summary': job.summary, 'result': result._asdict()})

    # ============================================================
    # Font API
    # ============================================================
    @app.route('/api/font', methods=['GET'])
    def font_status():
        return jsonify({'success': True, 'custom_font': converter.font_source is not None})

    @app.route('/api/font', methods=['POST'])
    def upload_font():
        upload = request.files.get('font')
        if upload is None or not (upload.filename or '').lower().endswith('.ttf'):
            return jsonify({'success': False, 'error': _msg('ttf_only')})
        source = FontSource.embedded(upload.read())
        try:
            converter.font_cache.get(source)
        except FontUnavailable as e:
            logger.warning('custom_font_rejected', error=str(e))
            return jsonify({'success': False, 'error': _msg('font_failed')})
        converter.font_source = source
        return jsonify({'success': True, 'message': _msg('font_loaded')})

    # ============================================================
    # Settings API
    # ============================================================
    @app.route('/api/config', methods=['GET'])
    def get_config():
        cfg = load_config()
        safe = {k: v for k, v in cfg.items() if k != 'gemini_api_key'}
        safe['gemini_api_key_set'] = bool(cfg.get('gemini_api_key'))
        return jsonify({'success': True, 'config': safe})

    @app.route('/api/config', methods=['POST'])
    def update_config():
        data = request.get_json(silent=True) or {}
        updates = {}
        for key in CONFIG_KEYS:
            if key not in data:
                continue
            val = data[key]
            try:
                if key in ('pdf_font_size', 'preview_chars', 'summary_chars'):
                    val = int(float(val))
                elif key in ('pdf_margin', 'pdf_line_height'):
                    val = float(val)
                elif key == 'pdf_page_numbers':
                    val = _parse_flag(val)
                elif key == 'font_urls':
                    val = [str(u) for u in val] if isinstance(val, list) else [str(val)]
            except (TypeError, ValueError):
                return jsonify({'success': False, 'error': f'Invalid value for {key}'})
            updates[key] = val

        save_config(updates)
        return jsonify({'success': True, 'message': _msg('saved', updates.get('language'))})

    return app


# ============================================================
# Run
# ============================================================
if __name__ == '__main__':
    configure_logging()
    port = int(os.getenv('PORT', '5000'))
    print("\n  Epub2Pdf running!")
    print(f"  http://localhost:{port}\n")
    create_app().run(host='0.0.0.0', port=port, debug=False)
