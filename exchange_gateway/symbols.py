"""
Exchange Gateway - Symbol Codec.

============================================================
PURPOSE
============================================================
Canonical symbols are BASE/QUOTE (spot) and BASE/QUOTE:SETTLE
(contracts). Each vendor has its own native instrument id:

    vendor    spot        contract
    binance   BTCUSDT     BTCUSDT
    bybit     BTCUSDT     BTCUSDT
    okx       BTC-USDT    BTC-USDT-SWAP
    gate      BTC_USDT    BTC_USDT

Encoding has a registry-free fallback. Decoding does not: spot
and contract listings share ids on several vendors, so native
ids are only resolved through a loaded MarketRegistry.

============================================================
"""

from typing import Tuple

from .errors import InvalidSymbol, ExchangeNotSupported


SPOT_SEPARATOR = "/"
SETTLE_SEPARATOR = ":"

# vendor -> (joiner, contract suffix)
NATIVE_GRAMMAR = {
    "binance": ("", ""),
    "bybit": ("", ""),
    "okx": ("-", "-SWAP"),
    "gate": ("_", ""),
}


def parse_symbol(symbol: str) -> Tuple[str, str]:
    """
    Split a spot symbol into (base, quote).

    Raises:
        InvalidSymbol: if the symbol lacks exactly one "/"
    """
    parts = symbol.split(SPOT_SEPARATOR) if symbol else []
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise InvalidSymbol.from_message(f"invalid symbol format: {symbol!r}", symbol=symbol)
    return parts[0].strip().upper(), parts[1].strip().upper()


def parse_contract_symbol(symbol: str) -> Tuple[str, str, str]:
    """
    Split a canonical symbol into (base, quote, settle).

    settle is "" for spot symbols.
    """
    if symbol and SETTLE_SEPARATOR in symbol:
        pair, settle = symbol.split(SETTLE_SEPARATOR, 1)
        if not settle or SETTLE_SEPARATOR in settle:
            raise InvalidSymbol.from_message(f"invalid contract symbol: {symbol!r}", symbol=symbol)
    else:
        pair, settle = symbol, ""
    base, quote = parse_symbol(pair)
    return base, quote, settle.strip().upper()


def is_contract_symbol(symbol: str) -> bool:
    return SETTLE_SEPARATOR in (symbol or "")


def normalize_symbol(base: str, quote: str) -> str:
    return f"{base.upper()}{SPOT_SEPARATOR}{quote.upper()}"


def normalize_contract_symbol(base: str, quote: str, settle: str) -> str:
    return f"{normalize_symbol(base, quote)}{SETTLE_SEPARATOR}{settle.upper()}"


def infer_settle(quote: str, base: str, linear: bool = True, inverse: bool = False) -> str:
    """
    Settlement currency for listings that omit it.

    Linear contracts settle in the quote currency, inverse in the base.
    """
    if inverse and not linear:
        return base.upper()
    return quote.upper()


def encode(exchange_id: str, symbol: str) -> str:
    """
    Registry-free native id for a canonical symbol.

    Args:
        exchange_id: Vendor name
        symbol: Canonical spot or contract symbol

    Returns:
        Vendor-native instrument id

    Raises:
        InvalidSymbol: malformed symbol
        ExchangeNotSupported: unknown vendor
    """
    grammar = NATIVE_GRAMMAR.get(exchange_id.lower())
    if grammar is None:
        raise ExchangeNotSupported.from_message(f"unsupported exchange: {exchange_id}")

    joiner, contract_suffix = grammar
    base, quote, settle = parse_contract_symbol(symbol)
    native = f"{base}{joiner}{quote}"
    if settle:
        native += contract_suffix
    return native
