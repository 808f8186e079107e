# ===== IMPORTS & DEPENDENCIES =====
import re
import math
import logging
from typing import Any, List, Iterable
from bs4 import BeautifulSoup

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

HTML_ENTITIES = {
    '&amp;': '&',
    '&lt;': '<',
    '&gt;': '>',
    '&quot;': '"',
    '&#39;': "'",
    '&mdash;': '—',
    '&ndash;': '–',
    '&nbsp;': ' ',
}

_LEADING_INT = re.compile(r'^\s*([+-]?\d+)')
_LEADING_FLOAT = re.compile(r'^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)')

# ===== UTILITY FUNCTIONS =====

def to_int(value: Any) -> int:
    """
    Lenient integer coercion: reads the leading digits of a string ("12 min" -> 12)
    and returns 0 for anything unparseable, non-finite, negative or missing.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return 0
        number = int(value)
    else:
        match = _LEADING_INT.match(str(value))
        if not match:
            return 0
        number = int(match.group(1))
    return number if number > 0 else 0


def to_float(value: Any) -> float:
    """Same as `to_int` for floats. NaN, infinities and negatives become 0.0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _LEADING_FLOAT.match(str(value))
        if not match:
            return 0.0
        number = float(match.group(1))
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def parse_player_list(raw: str) -> List[int]:
    """Parses '2,3,4' into [2, 3, 4], silently dropping invalid or non-positive tokens."""
    if not raw:
        return []
    counts = []
    for token in raw.split(','):
        token = token.strip()
        if not token.isdigit():
            continue
        count = int(token)
        if count > 0:
            counts.append(count)
    return counts


def unique(values: Iterable) -> list:
    """Order-preserving de-duplication."""
    seen = set()
    result = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


def strip_html(html: str) -> str:
    """Returns the text content of an HTML fragment."""
    if not html:
        return ""
    return BeautifulSoup(html, 'lxml').get_text().strip()


def clean_description(raw: str) -> str:
    """
    Converts a scraped HTML description into plain text: tags are removed, the fixed
    entity table is decoded and runs of 3+ newlines collapse to a single blank line.
    """
    if not raw:
        return ""
    text = re.sub(r'<[^>]*>', '', raw)
    for entity, replacement in HTML_ENTITIES.items():
        text = text.replace(entity, replacement)
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.strip()
