import asyncio
import unittest

from desk_stream.backend import JobBackend
from desk_stream.backends.memory_backend import InMemoryJobBackend
from desk_stream.errors import BackendError, SubscriptionError


class InMemoryJobBackendTests(unittest.TestCase):
    def test_satisfies_backend_protocol(self) -> None:
        self.assertIsInstance(InMemoryJobBackend(), JobBackend)

    def test_submit_records_user_message_and_queues_job(self) -> None:
        backend = InMemoryJobBackend()

        async def scenario():
            job_id = await backend.submit_turn("chat-1", {"message": "hello"})
            return job_id, await backend.fetch_active_job("chat-1"), await backend.fetch_messages_page("chat-1", 1, 10)

        job_id, active, messages = asyncio.run(scenario())

        self.assertEqual(job_id, active)
        self.assertEqual("queued", backend.job(job_id).status)
        self.assertEqual([("user", "hello")], [(m["role"], m["content"]) for m in messages])

    def test_subscriber_receives_log_then_live_events(self) -> None:
        backend = InMemoryJobBackend()
        job_id = backend.create_job("chat-1")
        backend.publish(job_id, "message_delta", {"text": "a"})

        async def scenario():
            received = []
            events = backend.subscribe_events(job_id)
            received.append(await events.__anext__())
            backend.publish(job_id, "message_delta", {"text": "ab"})
            received.append(await events.__anext__())
            count = backend.subscriber_count(job_id)
            await events.aclose()
            return received, count

        received, count = asyncio.run(scenario())

        self.assertEqual(["a", "ab"], [e.payload["text"] for e in received])
        self.assertLess(received[0].sequence, received[1].sequence)
        self.assertEqual(1, count)
        self.assertEqual(0, backend.subscriber_count(job_id))

    def test_broken_stream_raises_to_subscriber(self) -> None:
        backend = InMemoryJobBackend()
        job_id = backend.create_job("chat-1")

        async def scenario():
            events = backend.subscribe_events(job_id)
            backend.fail_next_subscribe(job_id)
            with self.assertRaises(SubscriptionError):
                await events.__anext__()

            events = backend.subscribe_events(job_id)
            pending = asyncio.ensure_future(events.__anext__())
            await asyncio.sleep(0)
            backend.break_stream(job_id)
            with self.assertRaises(SubscriptionError):
                await pending

        asyncio.run(scenario())

    def test_status_watch_ends_at_terminal_status(self) -> None:
        backend = InMemoryJobBackend()
        job_id = backend.create_job("chat-1", status="pending")

        async def scenario():
            seen = []

            async def watch():
                async for status in backend.watch_job_status(job_id):
                    seen.append(status)

            task = asyncio.create_task(watch())
            await asyncio.sleep(0)
            backend.set_status(job_id, "processing")
            backend.set_status(job_id, "completed")
            await asyncio.wait_for(task, timeout=1)
            return seen

        self.assertEqual(["queued", "running", "completed"], asyncio.run(scenario()))
        self.assertIsNone(asyncio.run(backend.fetch_active_job("chat-1")))
        with self.assertRaises(BackendError):
            backend.set_status(job_id, "running")

    def test_messages_are_paged(self) -> None:
        backend = InMemoryJobBackend()
        for index in range(3):
            backend.save_message("chat-1", "user", str(index))

        second_page = asyncio.run(backend.fetch_messages_page("chat-1", 2, 2))

        self.assertEqual(["2"], [m["content"] for m in second_page])


if __name__ == "__main__":
    unittest.main()
