import asyncio
from unittest.mock import Mock

import pytest

from app.imagehub.clients import ProviderRegistry
from app.imagehub.clients.base import BaseGenerator
from app.imagehub.errors import (
    ItemNotRetryableError,
    MissingCredentialError,
    NoPromptsError,
    NotAuthorizedError,
    UnsupportedProviderError,
)
from app.imagehub.queue import FAIL, OK, PENDING, GenerationQueue, QueueStatus


def statuses(queue):
    return [item.status for item in queue.items]


def test_prompt_text_builds_one_pending_item_per_line(queue):
    assert queue.set_prompt_text("cat\n\n  dog  \r\ncat\n   ")

    assert [item.prompt for item in queue.items] == ["cat", "dog", "cat"]
    assert [item.name for item in queue.items] == ["cat.png", "dog.png", "cat-copy.png"]
    assert statuses(queue) == [PENDING] * 3
    assert all(item.image_data is None and item.error is None for item in queue.items)
    assert queue.state.cursor == 0
    assert queue.status == QueueStatus.IDLE


def test_unchanged_prompt_text_does_not_rebuild(queue):
    queue.set_prompt_text("cat")
    queue.items[0].mark_fail("boom")

    assert not queue.set_prompt_text("cat")
    assert queue.items[0].status == FAIL


@pytest.mark.asyncio
async def test_full_run_processes_every_item_in_order(queue, generator):
    generator.script = {"two": ["provider said no"], "three": [RuntimeError("network down")]}
    queue.set_prompt_text("one\ntwo\nthree\nfour")

    queue.start()
    await queue.join()

    assert queue.state.cursor == 4
    assert statuses(queue) == [OK, FAIL, FAIL, OK]
    assert queue.items[0].image_data == b"img:one"
    assert queue.items[1].error == "provider said no"
    assert queue.items[2].error == "network down"
    assert generator.calls == ["one", "two", "three", "four"]
    assert generator.max_active == 1
    assert not queue.state.running
    assert queue.status == QueueStatus.COMPLETED
    assert queue.progress == 100


@pytest.mark.asyncio
async def test_exception_without_message_is_recorded_by_type(queue, generator):
    generator.script = {"one": [KeyError()]}
    queue.set_prompt_text("one")

    queue.start()
    await queue.join()

    assert queue.items[0].status == FAIL
    assert queue.items[0].error


@pytest.mark.asyncio
async def test_pause_applies_in_flight_result_and_holds_next_item(queue, generator):
    queue.set_prompt_text("one\ntwo\nthree")
    entered, gate = generator.hold("two")

    queue.start()
    await entered.wait()
    queue.pause()
    gate.set()
    await queue.join()

    assert statuses(queue) == [OK, OK, PENDING]
    assert queue.state.cursor == 2
    assert generator.calls == ["one", "two"]
    assert queue.status == QueueStatus.PAUSED

    queue.resume()
    await queue.join()

    assert statuses(queue) == [OK, OK, OK]
    assert generator.calls == ["one", "two", "three"]
    assert queue.status == QueueStatus.COMPLETED


@pytest.mark.asyncio
async def test_resume_while_request_in_flight_keeps_single_worker(queue, generator):
    queue.set_prompt_text("one\ntwo\nthree")
    entered, gate = generator.hold("one")

    queue.start()
    await entered.wait()
    queue.pause()
    queue.resume()
    gate.set()
    await queue.join()

    assert generator.calls == ["one", "two", "three"]
    assert generator.max_active == 1


@pytest.mark.asyncio
async def test_stop_preserves_results_and_clear_resets(queue, generator):
    queue.set_prompt_text("one\ntwo\nthree")
    entered, gate = generator.hold("two")

    queue.start()
    await entered.wait()
    queue.stop()
    gate.set()
    await queue.join()

    assert statuses(queue) == [OK, OK, PENDING]
    assert queue.state.cursor == 2
    assert not queue.state.running and not queue.state.paused
    assert queue.status == QueueStatus.IDLE
    assert queue.state.prompt_text == "one\ntwo\nthree"

    queue.clear()

    assert queue.items == []
    assert queue.state.cursor == 0
    assert queue.state.prompt_text == ""
    assert queue.status == QueueStatus.IDLE


@pytest.mark.asyncio
async def test_resume_after_stop_continues_from_cursor(queue, generator):
    queue.set_prompt_text("one\ntwo\nthree")
    entered, gate = generator.hold("two")

    queue.start()
    await entered.wait()
    queue.stop()
    gate.set()
    await queue.join()

    queue.resume()
    await queue.join()

    assert generator.calls == ["one", "two", "three"]
    assert statuses(queue) == [OK, OK, OK]


@pytest.mark.asyncio
async def test_late_result_after_clear_is_discarded(queue, generator):
    queue.set_prompt_text("one\ntwo")
    entered, gate = generator.hold("one")

    queue.start()
    await entered.wait()
    queue.clear()
    queue.set_prompt_text("fresh")
    gate.set()
    await queue.join()

    assert [item.prompt for item in queue.items] == ["fresh"]
    assert statuses(queue) == [PENDING]
    assert queue.state.cursor == 0
    assert generator.calls == ["one"]


@pytest.mark.asyncio
async def test_restart_during_in_flight_request_starts_over(queue, generator):
    queue.set_prompt_text("one\ntwo\nthree")
    entered, gate = generator.hold("two")

    queue.start()
    await entered.wait()
    queue.stop()
    queue.start()
    assert queue.state.cursor == 0
    gate.set()
    await queue.join()

    assert generator.calls == ["one", "two", "one", "two", "three"]
    assert queue.state.cursor == 3
    assert statuses(queue) == [OK, OK, OK]
    assert generator.max_active == 1


@pytest.mark.asyncio
async def test_prompt_edits_are_ignored_while_running(queue, generator):
    queue.set_prompt_text("one\ntwo")
    entered, gate = generator.hold("one")

    queue.start()
    await entered.wait()
    assert not queue.set_prompt_text("something else")

    queue.pause()
    assert not queue.set_prompt_text("something else")
    gate.set()
    await queue.join()

    assert [item.prompt for item in queue.items] == ["one", "two"]
    assert queue.state.prompt_text == "one\ntwo"


@pytest.mark.asyncio
async def test_start_while_running_is_ignored(queue, generator):
    queue.set_prompt_text("one\ntwo")
    entered, gate = generator.hold("one")

    queue.start()
    await entered.wait()
    queue.start()
    gate.set()
    await queue.join()

    assert generator.calls == ["one", "two"]


def test_start_requires_login(queue, session):
    session.logout()
    queue.set_prompt_text("one")

    with pytest.raises(NotAuthorizedError):
        queue.start()

    assert not queue.state.running
    assert statuses(queue) == [PENDING]


def test_start_with_unknown_provider_never_dispatches(queue, generator):
    queue.set_prompt_text("one\ntwo")

    with pytest.raises(UnsupportedProviderError):
        queue.start("Nope")

    assert generator.calls == []
    assert statuses(queue) == [PENDING, PENDING]
    assert not queue.state.running
    assert queue.state.active_provider == "Fake"


def test_start_requires_prompts(queue):
    with pytest.raises(NoPromptsError):
        queue.start()
    assert not queue.state.running


def test_start_requires_credential(credentials, session, generator):
    registry = ProviderRegistry({"Fake": generator, "Other": generator})
    queue = GenerationQueue(registry, credentials, session, provider="Other")
    queue.set_prompt_text("one")

    with pytest.raises(MissingCredentialError):
        queue.start()

    assert not queue.state.running
    assert queue.state.cursor == 0


def test_select_provider_rejects_unknown(queue):
    with pytest.raises(UnsupportedProviderError):
        queue.select_provider("Nope")
    assert queue.state.active_provider == "Fake"


@pytest.mark.asyncio
async def test_retry_until_success_touches_only_that_item(queue, generator):
    generator.script = {"two": ["first failure", "second failure", b"finally"]}
    queue.set_prompt_text("one\ntwo\nthree")
    queue.start()
    await queue.join()
    assert statuses(queue) == [OK, FAIL, OK]

    item = await queue.retry(1)
    assert item.status == FAIL
    assert item.error == "second failure"

    item = await queue.retry(1)
    assert item.status == OK
    assert item.image_data == b"finally"
    assert item.error is None
    assert item.name == "two.png"
    assert statuses(queue) == [OK, OK, OK]
    assert queue.state.cursor == 3


@pytest.mark.asyncio
async def test_retry_only_accepts_failed_items(queue):
    queue.set_prompt_text("one")
    queue.start()
    await queue.join()

    with pytest.raises(ItemNotRetryableError):
        await queue.retry(0)
    with pytest.raises(IndexError):
        await queue.retry(5)


@pytest.mark.asyncio
async def test_scheduled_retry_marks_item_pending_then_resolves(queue, generator):
    generator.script = {"one": ["nope"]}
    queue.set_prompt_text("one")
    queue.start()
    await queue.join()

    entered, gate = generator.hold("one")
    queue.schedule_retry(0)
    await entered.wait()
    assert queue.items[0].status == PENDING
    assert queue.items[0].error is None

    gate.set()
    await queue.join()
    assert queue.items[0].status == OK


@pytest.mark.asyncio
async def test_retry_uses_current_provider(queue, credentials, generator):
    other = type(generator)()
    queue.registry.register("Other", other)
    credentials.save("Other", "other-key")
    generator.script = {"one": ["nope"]}
    queue.set_prompt_text("one")
    queue.start()
    await queue.join()

    queue.select_provider("Other")
    await queue.retry(0)

    assert other.calls == ["one"]
    assert queue.items[0].status == OK


@pytest.mark.asyncio
async def test_snapshot_omits_image_bytes(queue):
    queue.set_prompt_text("one")
    queue.start()
    await queue.join()

    snapshot = queue.snapshot()
    assert snapshot["status"] == "completed"
    assert snapshot["completed"] == 1
    assert snapshot["items"][0] == {
        "index": 0,
        "prompt": "one",
        "name": "one.png",
        "status": "ok",
        "error": None,
        "has_image": True,
    }


@pytest.mark.asyncio
async def test_ok_items_lists_only_generated_images(queue, generator):
    generator.script = {"two": ["nope"]}
    queue.set_prompt_text("one\ntwo\nthree")
    queue.start()
    await queue.join()

    assert [item.name for item in queue.ok_items()] == ["one.png", "three.png"]


@pytest.mark.asyncio
async def test_malformed_provider_result_fails_item_and_run_completes(queue):
    class RawBytesGenerator(BaseGenerator):
        async def generate(self, prompt, credential):
            return b"raw"

    queue.registry.register("Fake", RawBytesGenerator())
    queue.set_prompt_text("one\ntwo")

    queue.start()
    await queue.join()

    assert statuses(queue) == [FAIL, FAIL]
    assert queue.items[0].error == "Invalid result from provider"
    assert not queue.state.running
    assert queue.status == QueueStatus.COMPLETED


@pytest.mark.asyncio
async def test_run_reads_credentials_without_touching_storage(queue, storage, monkeypatch):
    monkeypatch.setattr(storage, "get_file", Mock(side_effect=AssertionError("storage read")))
    queue.set_prompt_text("one\ntwo")

    queue.start()
    await queue.join()

    assert statuses(queue) == [OK, OK]
    storage.get_file.assert_not_called()


@pytest.mark.asyncio
async def test_main_run_waits_for_retry_of_same_item(queue, generator):
    generator.script = {"two": ["nope", b"retry-result", b"main-result"]}
    queue.set_prompt_text("one\ntwo\nthree")
    queue.start()
    await queue.join()
    assert statuses(queue) == [OK, FAIL, OK]

    entered, gate = generator.hold("two")
    queue.schedule_retry(1)
    await entered.wait()

    queue.start()
    for _ in range(20):
        await asyncio.sleep(0)

    # Item 0 is done and the worker is parked on item 1 behind the retry
    assert queue.state.cursor == 1
    assert generator.active == 1
    assert generator.calls == ["one", "two", "three", "two", "one"]

    gate.set()
    await queue.join()

    assert generator.calls == ["one", "two", "three", "two", "one", "two", "three"]
    assert queue.items[1].status == OK
    assert queue.items[1].image_data == b"main-result"
    assert queue.state.cursor == 3
    assert queue.status == QueueStatus.COMPLETED
