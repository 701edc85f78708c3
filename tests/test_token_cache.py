from __future__ import annotations

import asyncio
import json
import logging

import pytest

from addrscan.adapters.token_cache_json import JsonTokenCache, read_token_file
from addrscan.domain.errors import RPCError, TokenCacheError
from addrscan.domain.models import TokenInfo

from conftest import TOKEN, FakeLedger


def test_lookup_reads_chain_once(ledger: FakeLedger, tmp_path) -> None:
    cache = JsonTokenCache(ledger, str(tmp_path / "tokens.json"))

    async def go():
        return await cache.lookup(TOKEN), await cache.lookup(TOKEN.lower())

    first, second = asyncio.run(go())
    assert first == second == TokenInfo(TOKEN, "USDC", 10**6)
    assert ledger.count("symbol") == 1
    assert ledger.count("decimals") == 1


def test_concurrent_misses_share_one_lookup(ledger: FakeLedger, tmp_path) -> None:
    cache = JsonTokenCache(ledger, str(tmp_path / "tokens.json"))

    async def go():
        return await asyncio.gather(*(cache.lookup(TOKEN) for _ in range(5)))

    assert len(set(asyncio.run(go()))) == 1
    assert ledger.count("symbol") == 1


def test_reload_from_file_needs_no_lookup(ledger: FakeLedger, tmp_path) -> None:
    path = str(tmp_path / "nested" / "tokens.json")
    cache = JsonTokenCache(ledger, path)
    info = asyncio.run(cache.lookup(TOKEN))
    cache.save()

    with open(path) as f:
        assert json.load(f) == [{"Address": TOKEN, "Symbol": "USDC", "Multiplier": 1_000_000}]

    fresh_ledger = FakeLedger(symbols={}, decimals={})
    reloaded = JsonTokenCache(fresh_ledger, path)
    reloaded.load()
    assert asyncio.run(reloaded.lookup(TOKEN)) == info
    assert fresh_ledger.calls == []


def test_decimals_failure_defaults_to_18(tmp_path, caplog) -> None:
    ledger = FakeLedger(symbols={TOKEN: "ODD"}, decimals={})
    cache = JsonTokenCache(ledger, str(tmp_path / "tokens.json"))
    with caplog.at_level(logging.WARNING):
        info = asyncio.run(cache.lookup(TOKEN))
    assert info.multiplier == 10**18
    assert info.symbol == "ODD"
    assert "decimals" in caplog.text


def test_symbol_failure_propagates_and_is_not_cached(tmp_path) -> None:
    ledger = FakeLedger(symbols={}, decimals={TOKEN: 6})
    cache = JsonTokenCache(ledger, str(tmp_path / "tokens.json"))
    with pytest.raises(RPCError):
        asyncio.run(cache.lookup(TOKEN))
    assert len(cache) == 0


def test_missing_file_is_not_an_error(ledger: FakeLedger, tmp_path) -> None:
    cache = JsonTokenCache(ledger, str(tmp_path / "absent.json"))
    cache.load()
    assert len(cache) == 0


@pytest.mark.parametrize("content", ["{not json", '{"Address": "x"}', '[{"Symbol": "A"}]', '[{"Address": "nope", "Symbol": "A", "Multiplier": 1}]'])
def test_malformed_file_is_fatal(ledger: FakeLedger, tmp_path, content: str) -> None:
    path = tmp_path / "tokens.json"
    path.write_text(content)
    with pytest.raises(TokenCacheError):
        JsonTokenCache(ledger, str(path)).load()


def test_save_failure_is_logged_not_raised(ledger: FakeLedger, tmp_path, caplog) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("")
    cache = JsonTokenCache(ledger, str(blocker / "tokens.json"))
    asyncio.run(cache.lookup(TOKEN))
    with caplog.at_level(logging.ERROR):
        cache.save()
    assert "save token cache" in caplog.text


def test_read_token_file_checksums_addresses(tmp_path) -> None:
    path = tmp_path / "tokens.json"
    path.write_text(json.dumps([{"Address": TOKEN.lower(), "Symbol": "USDC", "Multiplier": 1_000_000}]))
    assert read_token_file(str(path)) == [TokenInfo(TOKEN, "USDC", 1_000_000)]
