"""
AI book summary
Gemini generateContent (REST) → {title, summary, keywords}
The summary is a convenience: any failure returns a localized placeholder
instead of raising.
"""
import json
import re
import time
from collections import namedtuple

import requests as http_requests

from config import load_config
from epub2pdf.log import get_logger

logger = get_logger(__name__)

GEMINI_API_URL = 'https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent'

SummaryResult = namedtuple('SummaryResult', ['title', 'summary', 'keywords'])

_PROMPTS = {
    'en': ('Analyze the following book excerpt (beginning of the text) and provide a concise '
           'summary, a title if missing, and 3 key themes/keywords. \n\nExcerpt:\n{excerpt}'),
    'zh': '分析以下书籍摘录（文本开头），提供简明摘要、缺失的标题以及3个关键主题/关键词。请用中文回答。\n\n摘录：\n{excerpt}',
}

_FALLBACKS = {
    'en': SummaryResult('Unknown Title', 'Could not generate summary at this time.', ['Error']),
    'zh': SummaryResult('未知标题', '暂时无法生成摘要。', ['Error']),
}

RESPONSE_SCHEMA = {
    'type': 'OBJECT',
    'properties': {
        'title': {'type': 'STRING'},
        'summary': {'type': 'STRING'},
        'keywords': {'type': 'ARRAY', 'items': {'type': 'STRING'}},
    },
    'required': ['title', 'summary', 'keywords'],
}


class SummaryError(RuntimeError):
    pass


def build_prompt(text, language='en', max_chars=5000):
    template = _PROMPTS.get(language, _PROMPTS['en'])
    return template.format(excerpt=text[:max_chars])


def fallback_summary(language='en'):
    return _FALLBACKS.get(language, _FALLBACKS['en'])


def _extract_text(data):
    """Concatenated text parts of the first non-empty candidate"""
    for candidate in data.get('candidates', []):
        parts = candidate.get('content', {}).get('parts', [])
        text = ''.join(p.get('text', '') for p in parts)
        if text:
            return text
    return None


def _parse_summary(raw):
    cleaned = raw.strip()
    if cleaned.startswith('```'):
        cleaned = cleaned.split('\n', 1)[-1] if '\n' in cleaned else cleaned[3:]
    if cleaned.endswith('```'):
        cleaned = cleaned[:-3]
    match = re.search(r'\{[\s\S]*\}', cleaned)
    if match:
        cleaned = match.group(0)
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError(f'unexpected summary payload: {type(data).__name__}')
    keywords = data.get('keywords') or []
    if isinstance(keywords, str):
        keywords = [keywords]
    return SummaryResult(
        title=str(data.get('title', '')),
        summary=str(data.get('summary', '')),
        keywords=[str(k) for k in keywords],
    )


# ============================================================
# API call (with retries)
# ============================================================
def call_gemini(api_key, model, prompt, attempts=3, timeout=120):
    if not api_key:
        raise SummaryError('Gemini API key is not configured.')

    body = {
        'contents': [{'role': 'user', 'parts': [{'text': prompt}]}],
        'generationConfig': {
            'responseMimeType': 'application/json',
            'responseSchema': RESPONSE_SCHEMA,
        },
    }
    url = GEMINI_API_URL.format(model=model)

    for attempt in range(attempts):
        last = attempt == attempts - 1
        try:
            resp = http_requests.post(
                url,
                headers={'x-goog-api-key': api_key, 'Content-Type': 'application/json'},
                json=body,
                timeout=timeout,
            )
            if resp.status_code in (400, 401, 403):
                raise SummaryError(f'API error ({resp.status_code}): {resp.text[:300]}')
            if resp.status_code != 200:
                if not last:
                    time.sleep(2)
                    continue
                raise SummaryError(f'API error ({resp.status_code}): {resp.text[:300]}')

            text = _extract_text(resp.json())
            if text:
                return text
            if not last:
                time.sleep(2)
                continue
            raise SummaryError('No response from AI')

        except http_requests.exceptions.Timeout:
            if not last:
                time.sleep(3)
                continue
            raise SummaryError(f'API request timed out ({timeout}s)')
        except http_requests.exceptions.RequestException as e:
            if not last:
                time.sleep(2)
                continue
            raise SummaryError(f'API request failed: {e}') from e

    raise SummaryError('API call failed (retries exhausted)')


def summarize_book_content(text, language='en', config=None):
    """Summary of the beginning of the book; never raises."""
    cfg = config or load_config()
    prompt = build_prompt(text, language, cfg.get('summary_chars', 5000))
    try:
        raw = call_gemini(cfg.get('gemini_api_key'), cfg.get('ai_model', 'gemini-3-flash-preview'), prompt)
        return _parse_summary(raw)
    except (SummaryError, ValueError) as e:
        logger.warning('summary_failed', error=str(e), language=language)
        return fallback_summary(language)
