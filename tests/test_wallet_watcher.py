"""Tests for WalletWatcher (polling, dedup, watermark, queueing)."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from conftest import T0, WALLET, make_event, make_raw

from polycopy.config import WalletWatchConfig
from polycopy.models.trade import Outcome, Side
from polycopy.watcher.wallet_watcher import WalletWatcher


def _watcher(*batches) -> tuple[WalletWatcher, AsyncMock]:
    source = AsyncMock()
    source.get_trades.side_effect = list(batches)
    return WalletWatcher(source), source


class TestPoll:
    async def test_emits_new_trades(self, wallet_config):
        watcher, _ = _watcher([make_raw(tx_hash="0xa"), make_raw(outcome=Outcome.NO, tx_hash="0xb")])
        events = await watcher.poll(wallet_config)
        assert len(events) == 2
        assert events[0].wallet_name == "whale"
        assert events[0].wallet_address == WALLET

    async def test_watermark_passed_as_since(self, wallet_config):
        watcher, source = _watcher([make_raw(seconds=10, tx_hash="0xa")], [])
        await watcher.poll(wallet_config)
        await watcher.poll(wallet_config)
        first_since = source.get_trades.call_args_list[0].args[1]
        second_since = source.get_trades.call_args_list[1].args[1]
        assert first_since is None
        assert second_since == T0 + timedelta(seconds=10)

    async def test_watermark_set_per_event(self, wallet_config):
        # venue 반환 순서대로 갱신 → 마지막 이벤트 timestamp
        watcher, _ = _watcher([
            make_raw(seconds=30, tx_hash="0xa"),
            make_raw(seconds=20, outcome=Outcome.NO, tx_hash="0xb"),
        ])
        await watcher.poll(wallet_config)
        assert watcher.watermark(WALLET) == T0 + timedelta(seconds=20)

    async def test_position_id_seen_once(self, wallet_config):
        watcher, _ = _watcher(
            [make_raw(position_id="pos-1", tx_hash="0xa")],
            [make_raw(position_id="pos-1", seconds=600, tx_hash="0xz")],
        )
        assert len(await watcher.poll(wallet_config)) == 1
        assert await watcher.poll(wallet_config) == []

    async def test_same_tx_hash_is_duplicate(self, wallet_config):
        watcher, _ = _watcher(
            [make_raw(tx_hash="0xa")],
            [make_raw(tx_hash="0xa", seconds=3600)],
        )
        await watcher.poll(wallet_config)
        assert await watcher.poll(wallet_config) == []

    async def test_distinct_tx_hash_inside_window_is_duplicate(self, wallet_config):
        watcher, _ = _watcher([make_raw(tx_hash="0xa"), make_raw(tx_hash="0xb", seconds=1)])
        events = await watcher.poll(wallet_config)
        assert [e.tx_hash for e in events] == ["0xa"]

    async def test_distinct_tx_hash_outside_window_is_new(self, wallet_config):
        watcher, _ = _watcher([make_raw(tx_hash="0xa"), make_raw(tx_hash="0xb", seconds=6)])
        assert len(await watcher.poll(wallet_config)) == 2

    async def test_window_suppressed_id_is_remembered(self, wallet_config):
        # 히스토리가 1건뿐이라 0xa는 다음 이벤트에 밀려남
        source = AsyncMock()
        source.get_trades.side_effect = [
            [make_raw(tx_hash="0xa"), make_raw(seconds=2, position_id="pos-7")],
            [make_raw(outcome=Outcome.NO, seconds=100, tx_hash="0xn")],
            [make_raw(seconds=200, position_id="pos-7")],
        ]
        watcher = WalletWatcher(source, history_size=1)

        assert len(await watcher.poll(wallet_config)) == 1
        assert len(await watcher.poll(wallet_config)) == 1
        assert await watcher.poll(wallet_config) == []

    async def test_fallback_window_without_tx_hash(self, wallet_config):
        watcher, _ = _watcher([
            make_raw(seconds=0),
            make_raw(seconds=4),     # 5초 이내 → 중복
            make_raw(seconds=10),    # 5초 초과 → 새 거래
        ])
        events = await watcher.poll(wallet_config)
        assert [e.timestamp for e in events] == [T0, T0 + timedelta(seconds=10)]

    async def test_window_requires_same_market_outcome_side(self, wallet_config):
        watcher, _ = _watcher([
            make_raw(),
            make_raw(outcome=Outcome.NO),
            make_raw(side=Side.SELL),
            make_raw(market_id="0xother"),
        ])
        assert len(await watcher.poll(wallet_config)) == 4

    async def test_source_error_returns_empty(self, wallet_config):
        watcher, _ = _watcher(RuntimeError("api down"))
        assert await watcher.poll(wallet_config) == []
        assert watcher.wallet_stats(WALLET)["errors"] == 1
        assert watcher.watermark(WALLET) is None

    async def test_none_result_is_empty(self, wallet_config):
        watcher, _ = _watcher(None)
        assert await watcher.poll(wallet_config) == []


class TestPollAll:
    async def test_failure_isolated_per_wallet(self):
        good = WalletWatchConfig(address="0xgood", name="good")
        bad = WalletWatchConfig(address="0xbad", name="bad")
        disabled = WalletWatchConfig(address="0xoff", name="off", enabled=False)

        source = AsyncMock()

        async def _get(address, since=None):
            if address == "0xbad":
                raise ConnectionError("reset")
            return [make_raw(tx_hash=f"0x{address}")]

        source.get_trades.side_effect = _get
        watcher = WalletWatcher(source)

        events = await watcher.poll_all([good, bad, disabled])
        assert [e.wallet_name for e in events] == ["good"]
        assert source.get_trades.await_count == 2

    async def test_no_enabled_wallets(self):
        watcher, source = _watcher()
        assert await watcher.poll_all([]) == []
        source.get_trades.assert_not_awaited()


class TestQueue:
    def test_drop_oldest_when_full(self):
        queue: asyncio.Queue = asyncio.Queue(maxsize=2)
        first = make_event(tx_hash="0x1")
        second = make_event(tx_hash="0x2")
        third = make_event(tx_hash="0x3")
        for event in (first, second, third):
            WalletWatcher._enqueue(queue, event)

        assert queue.qsize() == 2
        assert queue.get_nowait() is second
        assert queue.get_nowait() is third

    async def test_run_stops_on_event(self, wallet_config):
        source = AsyncMock()
        source.get_trades.return_value = [make_raw(tx_hash="0xa")]
        watcher = WalletWatcher(source)
        queue: asyncio.Queue = asyncio.Queue(maxsize=10)
        stop = asyncio.Event()

        task = asyncio.create_task(watcher.run([wallet_config], queue, stop, interval=0.1))
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1.0)

        assert queue.qsize() == 1


class TestStats:
    async def test_wallet_stats(self, wallet_config):
        watcher, _ = _watcher([
            make_raw(price=0.5, size=100, tx_hash="0xa"),
            make_raw(side=Side.SELL, price=0.4, size=50, tx_hash="0xb"),
            make_raw(market_id="0xm2", price=0.2, size=10, tx_hash="0xc", seconds=5),
        ])
        await watcher.poll(wallet_config)
        stats = watcher.wallet_stats(WALLET)
        assert stats["total_trades"] == 3
        assert stats["buy_trades"] == 2
        assert stats["sell_trades"] == 1
        assert stats["total_volume_usd"] == pytest.approx(72.0)
        assert stats["markets_traded"] == 2
        assert stats["by_market"]["0xm2"]["trades"] == 1
        assert stats["last_trade_at"] == T0 + timedelta(seconds=5)
        assert stats["checks"] == 1

    def test_unknown_wallet(self):
        watcher, _ = _watcher()
        assert watcher.wallet_stats("0xnobody") is None
        assert watcher.history("0xnobody") == []

    async def test_address_case_insensitive(self, wallet_config):
        watcher, _ = _watcher([make_raw(tx_hash="0xa")])
        await watcher.poll(wallet_config)
        assert len(watcher.history(WALLET.upper())) == 1
