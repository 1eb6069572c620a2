"""Data models for polycopy."""

from polycopy.models.market import Market
from polycopy.models.opportunity import ArbitrageOpportunity, OpportunityType
from polycopy.models.order import Order, OrderStatus
from polycopy.models.orderbook import BookLevel, BookSide, OrderBook
from polycopy.models.position import ExposureSnapshot, Position
from polycopy.models.trade import Outcome, RawTrade, Side, TradeEvent

__all__ = [
    "Market",
    "ArbitrageOpportunity",
    "OpportunityType",
    "Order",
    "OrderStatus",
    "BookLevel",
    "BookSide",
    "OrderBook",
    "ExposureSnapshot",
    "Position",
    "Outcome",
    "RawTrade",
    "Side",
    "TradeEvent",
]
