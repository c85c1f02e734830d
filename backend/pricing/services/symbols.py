"""Mapping between the symbols callers use and the keys the quote API expects.

Pure functions; the same mapping is applied when building a request and when
reading prices back out of the response.
"""

EXCHANGE_PREFIX = "NSE"
MUTUAL_FUND_PREFIX = "MUTF_IN"


def is_qualified(symbol: str) -> bool:
    return ":" in symbol


def is_mutual_fund(symbol: str) -> bool:
    """Mutual fund tickers use underscores (e.g. SBI_BLUE_CCG_1OGZBIP); stock tickers never do."""
    return "_" in symbol


def format_symbol(symbol: str) -> str:
    """Qualify a bare symbol for the upstream API.

    >>> format_symbol("RELIANCE")
    'NSE:RELIANCE'
    >>> format_symbol("SBI_BLUE_CCG_1OGZBIP")
    'MUTF_IN:SBI_BLUE_CCG_1OGZBIP'
    >>> format_symbol("BSE:500325")
    'BSE:500325'
    """
    symbol = symbol.strip()
    if is_qualified(symbol):
        return symbol
    if is_mutual_fund(symbol):
        return f"{MUTUAL_FUND_PREFIX}:{symbol}"
    return f"{EXCHANGE_PREFIX}:{symbol}"
