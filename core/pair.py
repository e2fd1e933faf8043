"""
Currency Pair Model

Canonical representation of a trading pair and its exchange-specific spelling.

Every exchange spells the same market differently:
    - Kraken:  "XETHZUSD" (asset-class padded) or "ETHUSD"
    - Binance: "ETHBTC"
    - Gemini:  "ethbtc"
    - Liqui:   "eth_btc"

Inside the core a market is always a CurrencyPair value. Display strings only
exist at the edges (outbound requests and persisted config), rendered through
a CurrencyPairFormat. Two spellings of the same market parse to equal pairs,
so the pair itself (never its display string) is used as a cache key.

Usage:
    from core.pair import CurrencyPair, CurrencyPairFormat, parse_pair

    pair = CurrencyPair(base="eth", quote="btc")
    pair.display("_", uppercase=False)     # "eth_btc"
    parse_pair("eth_btc", CurrencyPairFormat(delimiter="_", uppercase=False))  # ETH/BTC
"""

from typing import Iterable, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.errors import FormatError


class CurrencyPairFormat(BaseModel):
    """
    Per-exchange rule for rendering and parsing pair strings.

    Attributes:
        delimiter: String placed between base and quote ("" for "ETHBTC")
        uppercase: Render codes in upper case
        separator: String joining several pairs in one request ("ETHBTC,LTCBTC")
        index: Optional currency present in every symbol, used to split
               delimiter-less symbols ("BTC" for "BTCETH")
    """

    delimiter: str = Field(default="", description="Delimiter between base and quote")
    uppercase: bool = Field(default=True, description="Render currency codes in upper case")
    separator: str = Field(default=",", description="Separator between pairs in a list")
    index: str = Field(default="", description="Index currency used to split symbols")

    model_config = ConfigDict(frozen=True)


class CurrencyPair(BaseModel):
    """
    Ordered (base, quote) currency tuple.

    base is the amount currency, quote the price currency. Codes are stripped
    and upper-cased on construction, so CurrencyPair(base="eth", quote="btc")
    equals CurrencyPair(base="ETH", quote="BTC") and hashes the same.

    Example:
        >>> pair = CurrencyPair(base="ETH", quote="USD")
        >>> pair.display("/")
        'ETH/USD'
        >>> str(pair)
        'ETH/USD'
    """

    base: str = Field(..., description="Base (amount) currency code", examples=["ETH", "BTC"])
    quote: str = Field(..., description="Quote (price) currency code", examples=["USD", "BTC"])

    model_config = ConfigDict(frozen=True)

    def __init__(self, base: str = None, quote: str = None, **data):
        # Allow positional construction: CurrencyPair("ETH", "BTC")
        if base is not None:
            data["base"] = base
        if quote is not None:
            data["quote"] = quote
        super().__init__(**data)

    @field_validator("base", "quote")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        """Currency codes are compared case-insensitively"""
        code = v.strip().upper()
        if not code:
            raise ValueError("currency code cannot be empty")
        return code

    def display(self, delimiter: str = "", uppercase: bool = True) -> str:
        """
        Render the pair with the given delimiter and case.

        Args:
            delimiter: String between base and quote
            uppercase: Upper case if True, lower case otherwise

        Returns:
            Display string, e.g. "ETH/BTC", "ETHBTC" or "eth_btc"
        """
        text = f"{self.base}{delimiter}{self.quote}"
        return text if uppercase else text.lower()

    def format(self, fmt: CurrencyPairFormat) -> str:
        """Render the pair using an exchange's CurrencyPairFormat."""
        return self.display(fmt.delimiter, fmt.uppercase)

    def swap(self) -> "CurrencyPair":
        return CurrencyPair(self.quote, self.base)

    def __str__(self) -> str:
        return self.display("/")

    def __repr__(self) -> str:
        return f"CurrencyPair('{self.base}', '{self.quote}')"


# ============================================
# Parsing
# ============================================

def _normalize_known(known_currencies: Optional[Iterable[str]]) -> Optional[Set[str]]:
    if known_currencies is None:
        return None
    return {c.strip().upper() for c in known_currencies if c and c.strip()}


def parse_pair(
    text: str,
    fmt: Optional[CurrencyPairFormat] = None,
    known_currencies: Optional[Iterable[str]] = None,
) -> CurrencyPair:
    """
    Parse an exchange-specific pair string into a CurrencyPair.

    Splitting rules, in order:
        1. fmt.delimiter set: split on it, exactly two non-empty parts required
        2. fmt.index set: the index currency is either the prefix or the suffix
        3. known_currencies given: the unique split where both halves are known
        4. otherwise: a six-letter string splits three plus three, anything
           else is ambiguous

    Args:
        text: Pair string as sent or received by the exchange
        fmt: The exchange's format (defaults to no delimiter)
        known_currencies: Currency codes the exchange lists; when given, both
                          halves must be among them

    Returns:
        CurrencyPair

    Raises:
        FormatError: If the string cannot be split into exactly two known codes

    Example:
        >>> parse_pair("ETH/BTC", CurrencyPairFormat(delimiter="/"))
        CurrencyPair('ETH', 'BTC')
        >>> parse_pair("DASHUSD", known_currencies=["DASH", "USD"])
        CurrencyPair('DASH', 'USD')
    """
    fmt = fmt or CurrencyPairFormat()
    known = _normalize_known(known_currencies)

    if text is None or not text.strip():
        raise FormatError("Currency pair string is empty")
    value = text.strip().upper()

    if fmt.delimiter:
        parts = value.split(fmt.delimiter.upper())
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise FormatError(f"Cannot split '{text}' on delimiter '{fmt.delimiter}'")
        base, quote = parts
    elif fmt.index:
        index = fmt.index.upper()
        if value.startswith(index) and len(value) > len(index):
            base, quote = index, value[len(index):]
        elif value.endswith(index) and len(value) > len(index):
            base, quote = value[:-len(index)], index
        else:
            raise FormatError(f"Index currency '{fmt.index}' not found in '{text}'")
    elif known:
        splits = [
            (value[:i], value[i:])
            for i in range(1, len(value))
            if value[:i] in known and value[i:] in known
        ]
        if len(splits) != 1:
            raise FormatError(f"Cannot split '{text}' into two known currencies")
        base, quote = splits[0]
    else:
        if len(value) != 6:
            raise FormatError(f"Cannot split '{text}' into base and quote without known currencies")
        base, quote = value[:3], value[3:]

    if known is not None and (base not in known or quote not in known):
        raise FormatError(f"Unknown currency in pair '{text}'")

    return CurrencyPair(base, quote)


def parse_config_pairs(
    texts: Iterable[str],
    fmt: Optional[CurrencyPairFormat] = None,
    base_currencies: Optional[Iterable[str]] = None,
) -> List[CurrencyPair]:
    """
    Parse configured pair strings.

    Without a delimiter or index the base currencies seed the known codes and
    every configured symbol ending in one of them contributes its prefix, so
    "DASHUSD" with base currency USD parses as DASH/USD. Six-letter symbols
    that no known split covers fall back to three plus three.

    Raises:
        FormatError: If a pair is malformed or its split is ambiguous
    """
    fmt = fmt or CurrencyPairFormat()
    texts = list(texts)
    if fmt.delimiter or fmt.index:
        return [parse_pair(t, fmt) for t in texts]

    bases = _normalize_known(base_currencies) or set()
    known = set(bases)
    for text in texts:
        value = text.strip().upper()
        for code in bases:
            if value.endswith(code) and len(value) > len(code):
                known.add(value[:-len(code)])

    pairs = []
    for text in texts:
        try:
            pairs.append(parse_pair(text, fmt, known or None))
        except FormatError:
            if not known or len(text.strip()) != 6:
                raise
            pairs.append(parse_pair(text, fmt))
    return pairs


def parse_pairs(
    text: str,
    fmt: Optional[CurrencyPairFormat] = None,
    known_currencies: Optional[Iterable[str]] = None,
) -> List[CurrencyPair]:
    """Parse a separator-joined list of pair strings (empty text -> empty list)."""
    fmt = fmt or CurrencyPairFormat()
    if not text or not text.strip():
        return []
    return [
        parse_pair(item, fmt, known_currencies)
        for item in text.split(fmt.separator or ",")
        if item.strip()
    ]


def format_pairs(pairs: Iterable[CurrencyPair], fmt: CurrencyPairFormat) -> str:
    """Render several pairs joined by the format's separator."""
    return fmt.separator.join(pair.format(fmt) for pair in pairs)
