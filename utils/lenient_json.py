# utils/lenient_json.py
"""
Tolerant JSON decoding for chat-model replies.

Model output often wraps JSON in prose or markdown fences, leaves trailing
commas, embeds raw control characters or drops the quotes around keys.
try_parse_lenient() walks a fixed ladder of repairs and returns the first
successful decode, or None.
"""

import json
import re
import logging
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r'```(?:json|JSON)?\s*(.*?)```', re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r',(\s*[}\]])')
_BLOCK_COMMENT_RE = re.compile(r'/\*.*?\*/', re.DOTALL)
_LINE_COMMENT_RE = re.compile(r'^\s*//.*$', re.MULTILINE)
_CONTROL_CHARS_RE = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f]')

_BARE_LITERALS = {
    'true': 'true', 'false': 'false', 'null': 'null',
    'True': 'true', 'False': 'false', 'None': 'null',
}


def _loads(text: str) -> Optional[Any]:
    try:
        return json.loads(text, strict=False)
    except (json.JSONDecodeError, TypeError, ValueError):
        return None


def strip_fences(text: str) -> str:
    """Return the body of the first markdown code fence, or the text unchanged"""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def extract_json_span(text: str) -> Optional[str]:
    """Slice from the first '{' or '[' to its matching last closer"""
    starts = [i for i in (text.find('{'), text.find('[')) if i != -1]
    if not starts:
        return None
    start = min(starts)
    closer = '}' if text[start] == '{' else ']'
    end = text.rfind(closer)
    if end <= start:
        return None
    return text[start:end + 1]


def fix_common_errors(text: str) -> str:
    text = _BLOCK_COMMENT_RE.sub('', text)
    text = _LINE_COMMENT_RE.sub('', text)
    text = _CONTROL_CHARS_RE.sub(' ', text)
    return _TRAILING_COMMA_RE.sub(r'\1', text)


def quote_bare_tokens(text: str) -> str:
    """
    Rewrite JavaScript-ish object literals into JSON.

    Outside of strings: bare identifiers become quoted strings (keys and
    values alike, except the JSON literals), single-quoted strings become
    double-quoted ones and Python literals map to their JSON spelling.
    """
    out: List[str] = []
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if ch == '"':
            j = i + 1
            while j < n and text[j] != '"':
                j += 2 if text[j] == '\\' else 1
            out.append(text[i:j + 1])
            i = j + 1
        elif ch == "'":
            j = i + 1
            chars = []
            while j < n and text[j] != "'":
                if text[j] == '\\' and j + 1 < n:
                    chars.append(text[j + 1] if text[j + 1] == "'" else text[j:j + 2])
                    j += 2
                    continue
                chars.append('\\"' if text[j] == '"' else text[j])
                j += 1
            out.append('"' + ''.join(chars) + '"')
            i = j + 1
        elif ch.isalpha() or ch == '_':
            j = i
            while j < n and (text[j].isalnum() or text[j] in '_-'):
                j += 1
            word = text[i:j]
            if i > 0 and text[i - 1].isdigit():
                # exponent of a number such as 1e5 or 2.5E-3
                out.append(word)
            else:
                out.append(_BARE_LITERALS.get(word, f'"{word}"'))
            i = j
        else:
            out.append(ch)
            i += 1
    return ''.join(out)


def _ladder(text: str) -> List[Callable[[], Optional[str]]]:
    def unfenced() -> Optional[str]:
        return strip_fences(text)

    def span() -> Optional[str]:
        return extract_json_span(strip_fences(text))

    def repaired() -> Optional[str]:
        candidate = span() or strip_fences(text)
        return fix_common_errors(candidate)

    def requoted() -> Optional[str]:
        return fix_common_errors(quote_bare_tokens(repaired()))

    return [lambda: text, unfenced, span, repaired, requoted]


def try_parse_lenient(text: Optional[str]) -> Optional[Any]:
    """
    Decode *text* as a JSON object or array, repairing it if needed.

    Ladder: strict parse, strip code fences and prose, slice the JSON span,
    fix trailing commas / comments / control characters, quote bare keys
    and values. Returns None when every rung fails.
    """
    if text is None:
        return None
    if not isinstance(text, str):
        text = str(text)
    if not text.strip():
        return None

    for step, build in enumerate(_ladder(text)):
        candidate = build()
        if not candidate:
            continue
        parsed = _loads(candidate)
        if isinstance(parsed, (dict, list)):
            if step:
                logger.debug(f"Lenient JSON recovered at repair step {step}")
            return parsed

    logger.warning(f"⚠️ Could not parse model output as JSON: {text[:120]!r}")
    return None
