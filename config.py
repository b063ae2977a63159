import os
import sys
import json

from epub2pdf.log import get_logger

logger = get_logger(__name__)

# Frozen (EXE) builds keep settings next to the executable,
# source checkouts next to this file
if getattr(sys, 'frozen', False):
    _CONFIG_DIR = os.path.dirname(sys.executable)
else:
    _CONFIG_DIR = os.path.dirname(os.path.abspath(__file__))
CONFIG_FILE = os.path.join(_CONFIG_DIR, 'user_config.json')

# TrueType font downloaded when the user has not loaded a local .ttf
FONT_URLS = [
    'https://cdn.jsdelivr.net/gh/lxgw/LxgwWenKai-Lite@v1.3.2/LXGWWenKaiLite-Regular.ttf',
    'https://raw.githubusercontent.com/lxgw/LxgwWenKai-Lite/main/LXGWWenKaiLite-Regular.ttf',
]

DEFAULT_CONFIG = {
    'font_urls': FONT_URLS,
    # A4, points
    'pdf_font_size': 12,
    'pdf_margin': 57,
    'pdf_line_height': 20,
    'pdf_page_numbers': True,
    # text kept for the AI summary
    'preview_chars': 15000,
    'summary_chars': 5000,
    'ai_model': 'gemini-3-flash-preview',
    'gemini_api_key': '',
    'language': 'zh',
}


def _load_saved():
    config = DEFAULT_CONFIG.copy()
    if os.path.exists(CONFIG_FILE):
        try:
            with open(CONFIG_FILE, 'r', encoding='utf-8') as f:
                saved = json.load(f)
            config.update(saved)
        except (OSError, ValueError) as e:
            logger.warning('config_unreadable', path=CONFIG_FILE, error=str(e))
    return config


def load_config():
    config = _load_saved()
    env_key = os.getenv('GEMINI_API_KEY') or os.getenv('API_KEY')
    if env_key:
        config['gemini_api_key'] = env_key
    return config


def save_config(updates):
    config = _load_saved()
    config.update(updates)
    with open(CONFIG_FILE, 'w', encoding='utf-8') as f:
        json.dump(config, f, ensure_ascii=False, indent=2)
    return config
