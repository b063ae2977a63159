import os

import pytest
import reportlab

from config import DEFAULT_CONFIG


@pytest.fixture(scope='session')
def font_bytes():
    path = os.path.join(os.path.dirname(reportlab.__file__), 'fonts', 'Vera.ttf')
    with open(path, 'rb') as f:
        return f.read()


@pytest.fixture
def config():
    cfg = DEFAULT_CONFIG.copy()
    cfg['font_urls'] = ['https://fonts.invalid/a.ttf', 'https://fonts.invalid/b.ttf']
    cfg['gemini_api_key'] = ''
    return cfg
