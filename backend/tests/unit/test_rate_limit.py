import pytest

from app.infra.rate_limit import RateLimitExceeded, allow, enforce


@pytest.mark.asyncio
async def test_rate_limit_allows_within_budget():
    assert await allow("chat", "u5", limit=2, window_seconds=60)
    assert await allow("chat", "u5", limit=2, window_seconds=60)


@pytest.mark.asyncio
async def test_rate_limit_blocks_when_budget_exhausted():
    await allow("chat", "u6", limit=1, window_seconds=60)
    assert not await allow("chat", "u6", limit=1, window_seconds=60)


@pytest.mark.asyncio
async def test_enforce_raises_with_retry_after():
    await enforce("chat", "u7", limit=1)
    with pytest.raises(RateLimitExceeded) as excinfo:
        await enforce("chat", "u7", limit=1)
    assert excinfo.value.kind == "chat"
    assert 1 <= excinfo.value.retry_after <= 60
