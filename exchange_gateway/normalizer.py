"""
Exchange Gateway - Response Normalizer.

============================================================
PURPOSE
============================================================
Parses decoded vendor JSON into the unified model.

RULES:
- Unknown order statuses map to NEW (logged, never raised)
- remaining = amount - filled when the vendor omits it
- Signed lot counts: absolute size, side from the sign
- Contract lots are converted back to coin with the multiplier
- OHLCV is returned oldest-first
- Missing ticker fields stay zero

============================================================
"""

import logging
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional

from .markets import to_decimal
from .translator import contracts_to_amount
from .types import (
    ZERO,
    Balance,
    Balances,
    Market,
    OHLCV,
    Order,
    OrderSide,
    OrderStatus,
    OrderType,
    Position,
    PositionSide,
    Ticker,
    Trade,
    from_millis,
    from_seconds,
    utc_now,
)


logger = logging.getLogger(__name__)

MarketResolver = Callable[[str], Optional[Market]]


# ============================================================
# STATUS VOCABULARIES
# ============================================================

BINANCE_STATUS_MAP = {
    "NEW": OrderStatus.NEW,
    "PENDING_NEW": OrderStatus.NEW,
    "PENDING_CANCEL": OrderStatus.NEW,
    "PARTIALLY_FILLED": OrderStatus.PARTIALLY_FILLED,
    "FILLED": OrderStatus.FILLED,
    "CANCELED": OrderStatus.CANCELED,
    "CANCELLED": OrderStatus.CANCELED,
    "EXPIRED": OrderStatus.EXPIRED,
    "EXPIRED_IN_MATCH": OrderStatus.EXPIRED,
    "REJECTED": OrderStatus.REJECTED,
}

BYBIT_STATUS_MAP = {
    "New": OrderStatus.NEW,
    "Created": OrderStatus.NEW,
    "Untriggered": OrderStatus.NEW,
    "Triggered": OrderStatus.NEW,
    "PartiallyFilled": OrderStatus.PARTIALLY_FILLED,
    "Filled": OrderStatus.FILLED,
    "Cancelled": OrderStatus.CANCELED,
    "PartiallyFilledCanceled": OrderStatus.CANCELED,
    "Deactivated": OrderStatus.CANCELED,
    "Rejected": OrderStatus.REJECTED,
}

OKX_STATUS_MAP = {
    "live": OrderStatus.NEW,
    "partially_filled": OrderStatus.PARTIALLY_FILLED,
    "filled": OrderStatus.FILLED,
    "canceled": OrderStatus.CANCELED,
    "mmp_canceled": OrderStatus.CANCELED,
}

GATE_STATUS_MAP = {
    "open": OrderStatus.NEW,
    "cancelled": OrderStatus.CANCELED,
}

# Gate "closed"/"finished" orders report how they ended in finish_as
GATE_FINISH_AS_MAP = {
    "filled": OrderStatus.FILLED,
    "cancelled": OrderStatus.CANCELED,
    "ioc": OrderStatus.CANCELED,
    "poc": OrderStatus.CANCELED,
    "stp": OrderStatus.CANCELED,
    "liquidated": OrderStatus.CANCELED,
    "auto_deleveraged": OrderStatus.CANCELED,
    "reduce_only": OrderStatus.CANCELED,
    "position_closed": OrderStatus.CANCELED,
    "reduce_out": OrderStatus.CANCELED,
}

STATUS_MAPS = {
    "binance": BINANCE_STATUS_MAP,
    "bybit": BYBIT_STATUS_MAP,
    "okx": OKX_STATUS_MAP,
    "gate": GATE_STATUS_MAP,
}


def map_order_status(exchange_id: str, status: str, finish_as: str = "") -> OrderStatus:
    """
    Map a vendor status string to the canonical lifecycle state.

    Unknown states map to NEW with a warning.
    """
    if exchange_id == "gate" and status in ("closed", "finished"):
        return GATE_FINISH_AS_MAP.get(finish_as or "filled", OrderStatus.FILLED)

    status_map = STATUS_MAPS.get(exchange_id, {})
    if status in status_map:
        return status_map[status]

    logger.warning(f"Unknown {exchange_id} order status: {status!r}, defaulting to NEW")
    return OrderStatus.NEW


# ============================================================
# SHARED HELPERS
# ============================================================

def _d(value: Any) -> Decimal:
    return to_decimal(value)


def _side(value: Any) -> OrderSide:
    return OrderSide.SELL if str(value).lower() == "sell" else OrderSide.BUY


def _order_type(value: Any) -> OrderType:
    return OrderType.MARKET if str(value).lower() == "market" else OrderType.LIMIT


def _percentage(change: Decimal, open_price: Decimal) -> Decimal:
    if open_price == 0:
        return ZERO
    return change / open_price * 100


def _finalize(order: Order) -> Order:
    """Fill remaining/cost/average where the vendor left them out."""
    if order.remaining == 0 and order.amount > 0:
        order.remaining = max(order.amount - order.filled, ZERO)
    if order.cost == 0 and order.average > 0:
        order.cost = order.average * order.filled
    if order.average == 0 and order.filled > 0 and order.cost > 0:
        order.average = order.cost / order.filled
    return order


def _add_balance(balances: Balances, currency: str, free: Decimal, used: Decimal) -> None:
    if not currency or (free == 0 and used == 0):
        return
    balances[currency.upper()] = Balance(currency=currency.upper(), free=free, used=used)


def _first(data: Any) -> Dict[str, Any]:
    if isinstance(data, list):
        return data[0] if data else {}
    return data or {}


# ============================================================
# BINANCE
# ============================================================

def parse_binance_ticker(data: Dict[str, Any], symbol: str) -> Ticker:
    change = _d(data.get("priceChange"))
    return Ticker(
        symbol=symbol,
        timestamp=from_millis(data.get("closeTime")),
        bid=_d(data.get("bidPrice")),
        ask=_d(data.get("askPrice")),
        last=_d(data.get("lastPrice")),
        open=_d(data.get("openPrice")),
        high=_d(data.get("highPrice")),
        low=_d(data.get("lowPrice")),
        volume=_d(data.get("volume")),
        quote_volume=_d(data.get("quoteVolume")),
        change=change,
        percentage=_d(data.get("priceChangePercent")),
        info=data,
    )


def parse_binance_ohlcv(rows: Iterable[List[Any]]) -> List[OHLCV]:
    """[openTime, open, high, low, close, volume, closeTime, ...]"""
    return [
        OHLCV(
            timestamp=from_millis(row[0]),
            open=_d(row[1]),
            high=_d(row[2]),
            low=_d(row[3]),
            close=_d(row[4]),
            volume=_d(row[5]),
        )
        for row in rows
    ]


def parse_binance_trades(rows: Iterable[Dict[str, Any]], symbol: str) -> List[Trade]:
    # isBuyerMaker means the aggressor sold
    return [
        Trade(
            id=str(row.get("id", "")),
            symbol=symbol,
            side=OrderSide.SELL if row.get("isBuyerMaker") else OrderSide.BUY,
            price=_d(row.get("price")),
            amount=_d(row.get("qty")),
            timestamp=from_millis(row.get("time")),
            info=row,
        )
        for row in rows
    ]


def parse_binance_my_trades(rows: Iterable[Dict[str, Any]], symbol: str) -> List[Trade]:
    """Spot /api/v3/myTrades (isBuyer) or futures /fapi/v1/userTrades (side)."""
    trades = []
    for row in rows:
        if "side" in row:
            side = _side(row.get("side"))
        else:
            side = OrderSide.BUY if row.get("isBuyer", row.get("buyer")) else OrderSide.SELL

        trades.append(Trade(
            id=str(row.get("id", "")),
            symbol=symbol,
            side=side,
            price=_d(row.get("price")),
            amount=_d(row.get("qty")),
            timestamp=from_millis(row.get("time")),
            order_id=str(row.get("orderId", "")),
            fee=_d(row.get("commission")),
            fee_currency=row.get("commissionAsset", ""),
            info=row,
        ))
    return trades


def parse_binance_balance(data: Any) -> Balances:
    """Spot /api/v3/account or futures /fapi/v2/balance."""
    balances: Balances = {}
    if isinstance(data, dict):
        for entry in data.get("balances", []):
            _add_balance(balances, entry.get("asset", ""), _d(entry.get("free")), _d(entry.get("locked")))
    else:
        for entry in data or []:
            total = _d(entry.get("balance"))
            free = _d(entry.get("availableBalance"))
            _add_balance(balances, entry.get("asset", ""), free, total - free)
    return balances


def parse_binance_order(data: Dict[str, Any], symbol: str) -> Order:
    amount = _d(data.get("origQty"))
    filled = _d(data.get("executedQty"))
    cost = _d(data.get("cummulativeQuoteQty") or data.get("cumQuote"))
    average = _d(data.get("avgPrice"))

    fills = data.get("fills") or []
    if average == 0 and fills:
        qty = sum((_d(f.get("qty")) for f in fills), ZERO)
        if qty > 0:
            average = sum((_d(f.get("price")) * _d(f.get("qty")) for f in fills), ZERO) / qty

    order = Order(
        id=str(data.get("orderId", "")),
        client_order_id=data.get("clientOrderId", ""),
        symbol=symbol,
        type=_order_type(data.get("type")),
        side=_side(data.get("side")),
        amount=amount,
        price=_d(data.get("price")),
        filled=filled,
        remaining=max(amount - filled, ZERO),
        average=average,
        cost=cost,
        status=map_order_status("binance", data.get("status", "")),
        timestamp=from_millis(
            data.get("transactTime") or data.get("time") or data.get("updateTime")
        ),
        info=data,
    )
    return _finalize(order)


def parse_binance_positions(rows: Iterable[Dict[str, Any]], resolve: MarketResolver) -> List[Position]:
    positions = []
    for row in rows:
        size = _d(row.get("positionAmt"))
        market = resolve(row.get("symbol", ""))
        if size == 0 or market is None:
            continue

        position_side = str(row.get("positionSide", "BOTH")).upper()
        if position_side in ("LONG", "SHORT"):
            side = PositionSide(position_side.lower())
        else:
            side = PositionSide.LONG if size > 0 else PositionSide.SHORT

        leverage = _d(row.get("leverage"))
        margin = _d(row.get("isolatedMargin"))
        if margin == 0 and leverage > 0:
            margin = abs(_d(row.get("notional"))) / leverage

        positions.append(Position(
            symbol=market.symbol,
            side=side,
            amount=abs(size),
            entry_price=_d(row.get("entryPrice")),
            mark_price=_d(row.get("markPrice")),
            unrealized_pnl=_d(row.get("unRealizedProfit")),
            liquidation_price=_d(row.get("liquidationPrice")),
            leverage=leverage,
            margin=margin,
            timestamp=from_millis(row.get("updateTime")),
            info=row,
        ))
    return positions


# ============================================================
# BYBIT
# ============================================================

def parse_bybit_ticker(data: Dict[str, Any], symbol: str, timestamp: Any = None) -> Ticker:
    last = _d(data.get("lastPrice"))
    open_price = _d(data.get("prevPrice24h"))
    return Ticker(
        symbol=symbol,
        timestamp=from_millis(timestamp),
        bid=_d(data.get("bid1Price")),
        ask=_d(data.get("ask1Price")),
        last=last,
        open=open_price,
        high=_d(data.get("highPrice24h")),
        low=_d(data.get("lowPrice24h")),
        volume=_d(data.get("volume24h")),
        quote_volume=_d(data.get("turnover24h")),
        change=last - open_price if open_price else ZERO,
        percentage=_d(data.get("price24hPcnt")) * 100,
        info=data,
    )


def parse_bybit_ohlcv(rows: Iterable[List[Any]]) -> List[OHLCV]:
    """[startTime, open, high, low, close, volume, turnover], newest first."""
    candles = [
        OHLCV(
            timestamp=from_millis(row[0]),
            open=_d(row[1]),
            high=_d(row[2]),
            low=_d(row[3]),
            close=_d(row[4]),
            volume=_d(row[5]),
        )
        for row in rows
    ]
    candles.reverse()
    return candles


def parse_bybit_trades(rows: Iterable[Dict[str, Any]], symbol: str) -> List[Trade]:
    return [
        Trade(
            id=str(row.get("execId", "")),
            symbol=symbol,
            side=_side(row.get("side")),
            price=_d(row.get("price")),
            amount=_d(row.get("size")),
            timestamp=from_millis(row.get("time")),
            info=row,
        )
        for row in rows
    ]


def parse_bybit_executions(rows: Iterable[Dict[str, Any]], symbol: str) -> List[Trade]:
    """result.list of /v5/execution/list."""
    return [
        Trade(
            id=str(row.get("execId", "")),
            symbol=symbol,
            side=_side(row.get("side")),
            price=_d(row.get("execPrice")),
            amount=_d(row.get("execQty")),
            timestamp=from_millis(row.get("execTime")),
            order_id=str(row.get("orderId", "")),
            fee=_d(row.get("execFee")),
            fee_currency=row.get("feeCurrency", ""),
            info=row,
        )
        for row in rows
    ]


def parse_bybit_balance(result: Dict[str, Any]) -> Balances:
    """result.list[0].coin[] of /v5/account/wallet-balance."""
    balances: Balances = {}
    accounts = result.get("list") or []
    if not accounts:
        return balances

    for coin in accounts[0].get("coin") or []:
        wallet = _d(coin.get("walletBalance"))
        available = coin.get("availableToWithdraw")
        if available in (None, ""):
            free = wallet - _d(coin.get("locked"))
        else:
            free = _d(available)
        _add_balance(balances, coin.get("coin", ""), free, max(wallet - free, ZERO))
    return balances


def parse_bybit_order(data: Dict[str, Any], symbol: str) -> Order:
    amount = _d(data.get("qty"))
    filled = _d(data.get("cumExecQty"))
    leaves = data.get("leavesQty")
    remaining = _d(leaves) if leaves not in (None, "") else max(amount - filled, ZERO)

    order = Order(
        id=str(data.get("orderId", "")),
        client_order_id=data.get("orderLinkId", ""),
        symbol=symbol,
        type=_order_type(data.get("orderType")),
        side=_side(data.get("side")),
        amount=amount,
        price=_d(data.get("price")),
        filled=filled,
        remaining=remaining,
        average=_d(data.get("avgPrice")),
        cost=_d(data.get("cumExecValue")),
        status=map_order_status("bybit", data.get("orderStatus", "")),
        timestamp=from_millis(data.get("createdTime")),
        info=data,
    )
    return _finalize(order)


def parse_bybit_positions(rows: Iterable[Dict[str, Any]], resolve: MarketResolver) -> List[Position]:
    positions = []
    for row in rows:
        size = _d(row.get("size"))
        market = resolve(row.get("symbol", ""))
        if size == 0 or market is None:
            continue

        positions.append(Position(
            symbol=market.symbol,
            side=PositionSide.SHORT if row.get("side") == "Sell" else PositionSide.LONG,
            amount=abs(size),
            entry_price=_d(row.get("avgPrice")),
            mark_price=_d(row.get("markPrice")),
            unrealized_pnl=_d(row.get("unrealisedPnl")),
            liquidation_price=_d(row.get("liqPrice")),
            leverage=_d(row.get("leverage")),
            margin=_d(row.get("positionIM") or row.get("positionBalance")),
            timestamp=from_millis(row.get("updatedTime")),
            info=row,
        ))
    return positions


# ============================================================
# OKX
# ============================================================

def parse_okx_ticker(data: Dict[str, Any], market: Market) -> Ticker:
    last = _d(data.get("last"))
    open_price = _d(data.get("open24h"))
    change = last - open_price if open_price else ZERO

    if market.contract:
        # vol24h is in contracts, volCcy24h in base currency
        volume = _d(data.get("volCcy24h"))
        quote_volume = volume * last
    else:
        volume = _d(data.get("vol24h"))
        quote_volume = _d(data.get("volCcy24h"))

    return Ticker(
        symbol=market.symbol,
        timestamp=from_millis(data.get("ts")),
        bid=_d(data.get("bidPx")),
        ask=_d(data.get("askPx")),
        last=last,
        open=open_price,
        high=_d(data.get("high24h")),
        low=_d(data.get("low24h")),
        volume=volume,
        quote_volume=quote_volume,
        change=change,
        percentage=_percentage(change, open_price),
        info=data,
    )


def parse_okx_ohlcv(rows: Iterable[List[Any]], market: Market) -> List[OHLCV]:
    """[ts, o, h, l, c, vol, volCcy, volCcyQuote, confirm], newest first."""
    volume_index = 6 if market.contract else 5
    candles = [
        OHLCV(
            timestamp=from_millis(row[0]),
            open=_d(row[1]),
            high=_d(row[2]),
            low=_d(row[3]),
            close=_d(row[4]),
            volume=_d(row[volume_index]) if len(row) > volume_index else _d(row[5]),
        )
        for row in rows
    ]
    candles.reverse()
    return candles


def parse_okx_trades(rows: Iterable[Dict[str, Any]], market: Market) -> List[Trade]:
    return [
        Trade(
            id=str(row.get("tradeId", "")),
            symbol=market.symbol,
            side=_side(row.get("side")),
            price=_d(row.get("px")),
            amount=contracts_to_amount(_d(row.get("sz")), market.contract_multiplier),
            timestamp=from_millis(row.get("ts")),
            info=row,
        )
        for row in rows
    ]


def parse_okx_fills(rows: Iterable[Dict[str, Any]], market: Market) -> List[Trade]:
    """data of /api/v5/trade/fills. OKX reports fees as negative amounts."""
    return [
        Trade(
            id=str(row.get("tradeId", "")),
            symbol=market.symbol,
            side=_side(row.get("side")),
            price=_d(row.get("fillPx")),
            amount=contracts_to_amount(_d(row.get("fillSz")), market.contract_multiplier),
            timestamp=from_millis(row.get("ts")),
            order_id=str(row.get("ordId", "")),
            fee=-_d(row.get("fee")),
            fee_currency=row.get("feeCcy", ""),
            info=row,
        )
        for row in rows
    ]


def parse_okx_balance(data: Any) -> Balances:
    """data[0].details[] of /api/v5/account/balance."""
    balances: Balances = {}
    for detail in _first(data).get("details") or []:
        _add_balance(balances, detail.get("ccy", ""), _d(detail.get("availBal")), _d(detail.get("frozenBal")))
    return balances


def parse_okx_order(data: Dict[str, Any], market: Market) -> Order:
    multiplier = market.contract_multiplier
    amount = contracts_to_amount(_d(data.get("sz")), multiplier)
    filled = contracts_to_amount(_d(data.get("accFillSz")), multiplier)
    average = _d(data.get("avgPx"))

    order = Order(
        id=str(data.get("ordId", "")),
        client_order_id=data.get("clOrdId", ""),
        symbol=market.symbol,
        type=OrderType.MARKET if data.get("ordType") == "market" else OrderType.LIMIT,
        side=_side(data.get("side")),
        amount=amount,
        price=_d(data.get("px")),
        filled=filled,
        remaining=max(amount - filled, ZERO),
        average=average,
        cost=average * filled,
        status=map_order_status("okx", data.get("state", "")),
        timestamp=from_millis(data.get("cTime")),
        info=data,
    )
    return _finalize(order)


def parse_okx_positions(rows: Iterable[Dict[str, Any]], resolve: MarketResolver) -> List[Position]:
    positions = []
    for row in rows:
        size = _d(row.get("pos"))
        market = resolve(row.get("instId", ""))
        if size == 0 or market is None:
            continue

        pos_side = row.get("posSide", "net")
        if pos_side in ("long", "short"):
            side = PositionSide(pos_side)
        else:
            side = PositionSide.LONG if size > 0 else PositionSide.SHORT

        positions.append(Position(
            symbol=market.symbol,
            side=side,
            amount=contracts_to_amount(abs(size), market.contract_multiplier),
            entry_price=_d(row.get("avgPx")),
            mark_price=_d(row.get("markPx")),
            unrealized_pnl=_d(row.get("upl")),
            liquidation_price=_d(row.get("liqPx")),
            leverage=_d(row.get("lever")),
            margin=_d(row.get("margin") or row.get("imr")),
            timestamp=from_millis(row.get("uTime")),
            info=row,
        ))
    return positions


# ============================================================
# GATE
# ============================================================

def parse_gate_ticker(data: Dict[str, Any], market: Market) -> Ticker:
    last = _d(data.get("last"))
    percentage = _d(data.get("change_percentage"))
    if market.contract:
        volume = _d(data.get("volume_24h_base"))
        quote_volume = _d(data.get("volume_24h_quote"))
    else:
        volume = _d(data.get("base_volume"))
        quote_volume = _d(data.get("quote_volume"))

    open_price = ZERO
    if last and percentage != -100:
        open_price = last / (1 + percentage / 100)

    # Gate tickers carry no timestamp
    return Ticker(
        symbol=market.symbol,
        timestamp=utc_now(),
        bid=_d(data.get("highest_bid")),
        ask=_d(data.get("lowest_ask")),
        last=last,
        open=open_price,
        high=_d(data.get("high_24h")),
        low=_d(data.get("low_24h")),
        volume=volume,
        quote_volume=quote_volume,
        change=last - open_price if open_price else ZERO,
        percentage=percentage,
        info=data,
    )


def parse_gate_ohlcv(rows: Iterable[Any], market: Market) -> List[OHLCV]:
    """
    Spot rows are arrays:
        [t, quote_volume, close, high, low, open, base_volume, closed]
    Futures rows are objects:
        {"t", "o", "h", "l", "c", "v" (contracts), "sum"}
    """
    candles = []
    for row in rows:
        if isinstance(row, dict):
            candles.append(OHLCV(
                timestamp=from_seconds(row.get("t")),
                open=_d(row.get("o")),
                high=_d(row.get("h")),
                low=_d(row.get("l")),
                close=_d(row.get("c")),
                volume=contracts_to_amount(_d(row.get("v")), market.contract_multiplier),
            ))
        else:
            candles.append(OHLCV(
                timestamp=from_seconds(row[0]),
                open=_d(row[5]),
                high=_d(row[3]),
                low=_d(row[4]),
                close=_d(row[2]),
                volume=_d(row[6]) if len(row) > 6 else _d(row[1]),
            ))
    return candles


def parse_gate_trades(rows: Iterable[Dict[str, Any]], market: Market) -> List[Trade]:
    """
    Public trades and own fills (my_trades) for spot and futures.

    Futures rows carry a signed contract size and second timestamps;
    spot rows carry side, amount and create_time_ms.
    """
    trades = []
    for row in rows:
        if "size" in row:
            size = _d(row.get("size"))
            side = OrderSide.SELL if size < 0 else OrderSide.BUY
            amount = contracts_to_amount(abs(size), market.contract_multiplier)
            timestamp = from_seconds(row.get("create_time"))
            fee_currency = market.settle
        else:
            side = _side(row.get("side"))
            amount = _d(row.get("amount"))
            timestamp = from_millis(row.get("create_time_ms"))
            fee_currency = row.get("fee_currency", "")

        trades.append(Trade(
            id=str(row.get("id", "")),
            symbol=market.symbol,
            side=side,
            price=_d(row.get("price")),
            amount=amount,
            timestamp=timestamp,
            order_id=str(row.get("order_id", "")),
            fee=_d(row.get("fee")),
            fee_currency=fee_currency if "fee" in row else "",
            info=row,
        ))
    return trades


def parse_gate_balance(data: Any) -> Balances:
    """Spot accounts list, or the futures account object."""
    balances: Balances = {}
    if isinstance(data, dict):
        total = _d(data.get("total"))
        free = _d(data.get("available"))
        _add_balance(balances, data.get("currency", ""), free, max(total - free, ZERO))
        return balances

    for entry in data or []:
        _add_balance(balances, entry.get("currency", ""), _d(entry.get("available")), _d(entry.get("locked")))
    return balances


def parse_gate_order(data: Dict[str, Any], market: Market) -> Order:
    status = map_order_status("gate", data.get("status", ""), data.get("finish_as", ""))

    if market.contract:
        size = _d(data.get("size"))
        left = _d(data.get("left"))
        amount = contracts_to_amount(abs(size), market.contract_multiplier)
        remaining = contracts_to_amount(abs(left), market.contract_multiplier)
        filled = max(amount - remaining, ZERO)
        side = OrderSide.SELL if size < 0 else OrderSide.BUY
        price = _d(data.get("price"))
        average = _d(data.get("fill_price"))
        order_type = OrderType.MARKET if price == 0 else OrderType.LIMIT
        timestamp = from_seconds(data.get("create_time"))
        cost = average * filled
    else:
        amount = _d(data.get("amount"))
        if data.get("filled_amount") not in (None, ""):
            filled = _d(data.get("filled_amount"))
        else:
            filled = max(amount - _d(data.get("left")), ZERO)
        remaining = max(amount - filled, ZERO)
        side = _side(data.get("side"))
        price = _d(data.get("price"))
        average = _d(data.get("avg_deal_price"))
        order_type = _order_type(data.get("type"))
        timestamp = from_millis(data.get("create_time_ms"))
        cost = _d(data.get("filled_total"))

    if status == OrderStatus.NEW and filled > 0:
        status = OrderStatus.PARTIALLY_FILLED

    order = Order(
        id=str(data.get("id", "")),
        client_order_id=data.get("text", ""),
        symbol=market.symbol,
        type=order_type,
        side=side,
        amount=amount,
        price=price,
        filled=filled,
        remaining=remaining,
        average=average,
        cost=cost,
        status=status,
        timestamp=timestamp,
        info=data,
    )
    return _finalize(order)


def parse_gate_positions(rows: Iterable[Dict[str, Any]], resolve: MarketResolver) -> List[Position]:
    positions = []
    for row in rows:
        size = _d(row.get("size"))
        market = resolve(row.get("contract", ""))
        if size == 0 or market is None:
            continue

        positions.append(Position(
            symbol=market.symbol,
            side=PositionSide.LONG if size > 0 else PositionSide.SHORT,
            amount=contracts_to_amount(abs(size), market.contract_multiplier),
            entry_price=_d(row.get("entry_price")),
            mark_price=_d(row.get("mark_price")),
            unrealized_pnl=_d(row.get("unrealised_pnl")),
            liquidation_price=_d(row.get("liq_price")),
            leverage=_d(row.get("leverage")),
            margin=_d(row.get("margin")),
            timestamp=from_seconds(row.get("update_time")),
            info=row,
        ))
    return positions
