import asyncio

from feedback_triage.queue.models import MessageDeleted, NewMessage, WorkItem
from feedback_triage.queue.sequential_queue import SequentialQueue

from conftest import CHANNEL


def new_item(n: int) -> WorkItem:
    return WorkItem.create(NewMessage(text=f"message {n}", user="U1", ts=f"{n}.000001", channel=CHANNEL))


class Recorder:
    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.handled = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, item: WorkItem):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            # Yield so overlapping dispatches would show up
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            if item.payload.ts in self.fail_on:
                raise RuntimeError("triager exploded")
            self.handled.append(item.payload.ts)
        finally:
            self.in_flight -= 1


async def test_items_run_in_order_one_at_a_time():
    recorder = Recorder()
    queue = SequentialQueue(recorder)

    for n in range(10):
        queue.enqueue(new_item(n))
    await queue.join()

    assert recorder.handled == [f"{n}.000001" for n in range(10)]
    assert recorder.max_in_flight == 1


async def test_enqueue_during_drain_only_appends():
    recorder = Recorder()
    queue = SequentialQueue(recorder)

    queue.enqueue(new_item(0))
    await asyncio.sleep(0)
    assert queue.processing is True
    queue.enqueue(new_item(1))
    queue.enqueue(new_item(2))
    await queue.join()

    assert recorder.handled == ["0.000001", "1.000001", "2.000001"]
    assert recorder.max_in_flight == 1
    assert queue.processing is False


async def test_failing_item_does_not_block_the_next(caplog):
    recorder = Recorder(fail_on={"1.000001"})
    queue = SequentialQueue(recorder)

    for n in range(3):
        queue.enqueue(new_item(n))
    await queue.join()

    assert recorder.handled == ["0.000001", "2.000001"]
    assert "Error processing queued new message 1.000001" in caplog.text


async def test_enqueue_after_queue_went_idle_still_runs():
    recorder = Recorder()
    queue = SequentialQueue(recorder)

    queue.enqueue(new_item(0))
    await queue.join()
    await asyncio.sleep(0)
    queue.enqueue(new_item(1))
    await queue.join()

    assert recorder.handled == ["0.000001", "1.000001"]


async def test_close_finishes_queued_items():
    recorder = Recorder()
    queue = SequentialQueue(recorder)
    for n in range(3):
        queue.enqueue(new_item(n))

    await queue.close()

    assert len(recorder.handled) == 3
    queue.enqueue(new_item(9))
    assert queue.size() == 0


async def test_restart_after_close():
    recorder = Recorder()
    queue = SequentialQueue(recorder)
    queue.enqueue(new_item(0))
    await queue.close()

    queue.start()
    queue.enqueue(new_item(1))
    await queue.join()

    assert recorder.handled == ["0.000001", "1.000001"]


async def test_stop_drops_pending_items():
    started = asyncio.Event()
    release = asyncio.Event()
    handled = []

    async def slow(item):
        started.set()
        await release.wait()
        handled.append(item)

    queue = SequentialQueue(slow)
    queue.enqueue(new_item(0))
    queue.enqueue(new_item(1))
    await started.wait()

    await queue.stop()

    assert handled == []
    assert queue.size() == 0
    # Nothing is left outstanding for join() to wait on
    await asyncio.wait_for(queue.join(), timeout=1)


async def test_mixed_categories_keep_order():
    seen = []

    async def handler(item):
        seen.append(item.category.value)

    queue = SequentialQueue(handler)
    queue.enqueue(new_item(0))
    queue.enqueue(WorkItem.create(MessageDeleted(message_ts="0.000001", channel=CHANNEL)))
    await queue.join()

    assert seen == ["new", "message_deleted"]
