import asyncio

import pytest

from cutout.services.progress import ProgressSimulator


@pytest.mark.asyncio
async def test_ticker_advances_and_holds_at_ceiling():
    progress = ProgressSimulator(interval=0.001, ceiling=5)

    progress.start()
    for _ in range(200):
        if not progress.running:
            break
        await asyncio.sleep(0.005)

    assert progress.value == 5
    assert not progress.running


@pytest.mark.asyncio
async def test_finish_forces_full_progress():
    progress = ProgressSimulator(interval=10)

    progress.start()
    assert progress.running
    progress.finish()

    assert progress.value == 100
    assert not progress.running


@pytest.mark.asyncio
async def test_restart_replaces_previous_ticker():
    progress = ProgressSimulator(interval=0.001, ceiling=95)

    progress.start()
    await asyncio.sleep(0.02)
    first = progress._ticker
    progress.start()
    await asyncio.sleep(0)

    assert first.cancelled() or first.done()
    assert progress._ticker is not first
    assert progress.value <= 1
    progress.reset()
    assert progress.value == 0
    assert not progress.running
