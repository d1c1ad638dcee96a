"""Skill watcher tests — event filtering, debounce, live rescans."""

import asyncio

import pytest
from watchdog.events import FileCreatedEvent, FileModifiedEvent, FileOpenedEvent

from clawgate.skills import SkillCatalog, SkillChangeHandler, SkillWatcher

from conftest import write_skill


async def _wait_for(predicate, timeout: float = 5.0, interval: float = 0.05) -> bool:
    deadline = asyncio.get_running_loop().time() + timeout
    while asyncio.get_running_loop().time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


@pytest.mark.asyncio
async def test_handler_forwards_and_filters_events():
    """Editor swap files, VCS internals and open events never reach the queue."""
    queue: asyncio.Queue = asyncio.Queue()
    handler = SkillChangeHandler(asyncio.get_running_loop(), queue)

    handler.on_any_event(FileModifiedEvent("/skills/a/SKILL.md"))
    handler.on_any_event(FileModifiedEvent("/skills/a/.SKILL.md.swp"))
    handler.on_any_event(FileModifiedEvent("/skills/a/SKILL.md~"))
    handler.on_any_event(FileCreatedEvent("/skills/.git/index"))
    handler.on_any_event(FileOpenedEvent("/skills/a/SKILL.md"))
    await asyncio.sleep(0)  # let call_soon_threadsafe callbacks run

    assert queue.qsize() == 1
    assert queue.get_nowait() == {"type": "modified", "path": "/skills/a/SKILL.md"}


@pytest.mark.asyncio
async def test_burst_of_events_triggers_one_rescan(skills_root):
    catalog = SkillCatalog(skills_root)
    watcher = SkillWatcher(catalog, debounce_seconds=0.05)
    version = catalog.version

    for i in range(5):
        watcher.queue.put_nowait({"type": "modified", "path": f"/x/{i}"})
    task = asyncio.create_task(watcher.run())
    try:
        assert await _wait_for(lambda: watcher.rescans == 1)
        await asyncio.sleep(0.1)
        assert watcher.rescans == 1
        assert catalog.version == version + 1
        assert watcher.queue.empty()
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)


@pytest.mark.asyncio
async def test_start_without_root_is_disabled(tmp_path):
    watcher = SkillWatcher(SkillCatalog(tmp_path / "missing"))
    assert watcher.start() is False
    assert not watcher.running
    await watcher.stop()


@pytest.mark.asyncio
async def test_new_skill_is_picked_up_live(skills_root):
    """Creating a SKILL.md on disk shows up in the catalog without a restart."""
    catalog = SkillCatalog(skills_root)
    watcher = SkillWatcher(catalog, debounce_seconds=0.05)
    assert watcher.start() is True
    try:
        assert watcher.running
        write_skill(skills_root, "live", "live", "added while running")
        assert await _wait_for(lambda: "live" in catalog)
    finally:
        await watcher.stop()
    assert not watcher.running
