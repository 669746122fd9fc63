# utils/price_lexer.py
"""
Price recognition across currency symbols, ISO codes and bare decimals.

Bare decimals ("12.95") carry no currency of their own, so they are tagged
with the currency that dominates the surrounding text.
"""

import re
from collections import Counter
from dataclasses import dataclass
from typing import List, Optional

DEFAULT_CURRENCY = '$'

CURRENCY_SYMBOLS = '$£€¥₹₽₩₪₫₡₦₨₱¢₵'

# Ordered: earlier entries win keyword ties
CURRENCY_INDICATORS = [
    ('$', ['usd', 'us dollar', 'dollars', 'united states', 'america', 'usa', 'canada', 'australia']),
    ('€', ['eur', 'euro', 'euros', 'germany', 'france', 'italy', 'spain', 'portugal',
           'netherlands', 'belgium', 'austria', 'ireland', 'greece']),
    ('£', ['gbp', 'pound sterling', 'sterling', 'united kingdom', 'britain', 'england',
           'scotland', 'london']),
    ('¥', ['jpy', 'yen', 'japan', 'cny', 'yuan', 'rmb']),
    ('₹', ['inr', 'rupee', 'rupees', 'india']),
    ('₽', ['rub', 'ruble', 'rouble', 'russia']),
    ('₩', ['krw', 'korean won', 'korea']),
    ('₪', ['ils', 'shekel', 'shekels', 'israel']),
    ('₫', ['vnd', 'vietnamese dong', 'vietnam']),
    ('₨', ['pkr', 'lkr', 'pakistan', 'sri lanka']),
    ('₱', ['php', 'philippine peso', 'philippines']),
]

ISO_CODES = {
    'USD': '$', 'CAD': '$', 'AUD': '$', 'NZD': '$',
    'EUR': '€', 'GBP': '£', 'JPY': '¥', 'CNY': '¥', 'INR': '₹',
    'RUB': '₽', 'KRW': '₩', 'ILS': '₪', 'VND': '₫', 'PKR': '₨',
    'LKR': '₨', 'PHP': '₱', 'NGN': '₦', 'GHS': '₵', 'CRC': '₡',
}

_SYM = re.escape(CURRENCY_SYMBOLS)
_SYM_CLASS = f'[{_SYM}]'
_AMOUNT = r'\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d{1,6}(?:[.,]\d{1,2})?'
_CODES = '|'.join(ISO_CODES)

_PREFIX_RE = re.compile(rf'(?P<sym>{_SYM_CLASS})\s?(?P<num>{_AMOUNT})(?![\d%])')
_SUFFIX_RE = re.compile(rf'(?<![\d.,])(?P<num>{_AMOUNT})\s?(?P<sym>{_SYM_CLASS})')
_CODE_PREFIX_RE = re.compile(rf'\b(?P<code>{_CODES})\s?(?P<num>{_AMOUNT})(?![\d%])')
_CODE_SUFFIX_RE = re.compile(rf'(?<![\d.,])(?P<num>{_AMOUNT})\s?(?P<code>{_CODES})\b')
# Bare decimals: no neighbouring digits, separators, percent signs or time/date punctuation
_BARE_RE = re.compile(r'(?<![\d.,:/\-])(?P<num>\d{1,4}[.,]\d{2})(?![\d%:/\-]|[.,]\d)')

_PRICE_ONLY_RE = re.compile(
    rf'^\s*(?:{_SYM_CLASS}|(?:{_CODES})\s?)?\s*\d[\d.,\s]*\s*(?:{_SYM_CLASS}|\s?(?:{_CODES}))?\s*$'
)
_SYMBOL_COUNT_RE = re.compile(_SYM_CLASS)


@dataclass(frozen=True)
class PriceMatch:
    raw: str
    currency: str
    start: int
    end: int
    explicit: bool

    @property
    def tagged(self) -> str:
        """Price string carrying its currency, e.g. '$12.95' for a bare '12.95'"""
        if self.explicit:
            return self.raw
        return f"{self.currency}{self.raw}"


def detect_dominant_currency(text: Optional[str]) -> str:
    """
    Pick the currency symbol for a block of text.

    Explicit symbols win (most frequent first), then keyword and locale
    hints, then the '$' default.
    """
    if not text:
        return DEFAULT_CURRENCY

    symbols = Counter(_SYMBOL_COUNT_RE.findall(text))
    symbols.pop('¢', None)
    if symbols:
        best = max(symbols.values())
        for symbol, _ in CURRENCY_INDICATORS:
            if symbols.get(symbol) == best:
                return symbol
        return next(s for s, count in symbols.items() if count == best)

    for code, symbol in ISO_CODES.items():
        if re.search(rf'\b{code}\b', text):
            return symbol

    lowered = text.lower()
    best_symbol, best_hits = None, 0
    for symbol, keywords in CURRENCY_INDICATORS:
        hits = sum(len(re.findall(rf'\b{re.escape(keyword)}\b', lowered)) for keyword in keywords)
        if hits > best_hits:
            best_symbol, best_hits = symbol, hits
    return best_symbol or DEFAULT_CURRENCY


def find_prices(text: Optional[str], currency: Optional[str] = None) -> List[PriceMatch]:
    """
    Find every price-looking token in *text*, in order of appearance.

    *currency* tags bare decimals; when omitted it is inferred from the text.
    """
    if not text:
        return []

    matches: List[PriceMatch] = []

    def overlaps(start: int, end: int) -> bool:
        return any(start < m.end and end > m.start for m in matches)

    for pattern in (_PREFIX_RE, _SUFFIX_RE):
        for m in pattern.finditer(text):
            if not overlaps(m.start(), m.end()):
                matches.append(PriceMatch(m.group(0).strip(), m.group('sym'), m.start(), m.end(), True))

    for pattern in (_CODE_PREFIX_RE, _CODE_SUFFIX_RE):
        for m in pattern.finditer(text):
            if not overlaps(m.start(), m.end()):
                matches.append(PriceMatch(m.group(0).strip(), ISO_CODES[m.group('code')],
                                          m.start(), m.end(), True))

    bare = [m for m in _BARE_RE.finditer(text) if not overlaps(m.start(), m.end())]
    if bare:
        inferred = currency or detect_dominant_currency(text)
        for m in bare:
            matches.append(PriceMatch(m.group('num'), inferred, m.start(), m.end(), False))

    matches.sort(key=lambda m: m.start)
    return matches


_SPELLED_DOLLARS_RE = re.compile(r'\d+\s*dollars?\b', re.IGNORECASE)


def contains_price(text: Optional[str]) -> bool:
    """Any price token, or an amount spelled out in dollars"""
    if not text:
        return False
    return bool(find_prices(text, currency=DEFAULT_CURRENCY)) or bool(_SPELLED_DOLLARS_RE.search(text))


def is_price_only(text: Optional[str]) -> bool:
    """True when the whole string is a price (or a bare number) and nothing else"""
    if not text or not text.strip():
        return False
    return bool(_PRICE_ONLY_RE.match(text))
