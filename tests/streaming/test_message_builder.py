import random
import unittest

from desk_stream.models import MessageItem, StreamEvent
from desk_stream.streaming import StreamState, apply_event


def _delta(seq: int, *, text: str | None = None, delta: str | None = None) -> StreamEvent:
    payload = {}
    if text is not None:
        payload["text"] = text
    if delta is not None:
        payload["delta"] = delta
    return StreamEvent(id=f"e{seq}", sequence=seq, type="message_delta", payload=payload)


class MessageBuilderTests(unittest.TestCase):
    def setUp(self) -> None:
        self._user = MessageItem(id="u1", role="user", text="hello?")
        self._state = StreamState(items=(self._user,), message_prefix="streaming-job1")

    def test_first_delta_creates_assistant_message_at_tail(self) -> None:
        state = apply_event(self._state, _delta(1, text="Hel"))

        self.assertEqual(2, len(state.items))
        self.assertEqual(self._user, state.items[0])
        streaming = state.items[1]
        self.assertEqual("streaming-job1-0", streaming.id)
        self.assertEqual("assistant", streaming.role)
        self.assertEqual("Hel", streaming.text)
        self.assertEqual("streaming-job1-0", state.streaming_message_id)

    def test_cumulative_snapshots_replace_text(self) -> None:
        state = apply_event(self._state, _delta(1, text="Hel"))
        state = apply_event(state, _delta(2, text="Hello"))

        self.assertEqual(2, len(state.items))
        self.assertEqual("Hello", state.items[1].text)

    def test_incremental_deltas_append_to_tracked_text(self) -> None:
        state = apply_event(self._state, _delta(1, delta="Hel"))
        state = apply_event(state, _delta(2, delta="lo"))

        self.assertEqual("Hello", state.items[1].text)
        self.assertEqual("Hello", state.cumulative_text)

    def test_older_snapshot_does_not_overwrite_newer_one(self) -> None:
        state = apply_event(self._state, _delta(2, text="Hello"))
        state = apply_event(state, _delta(1, text="Hel"))

        self.assertEqual("Hello", state.items[1].text)

    def test_last_snapshot_wins_under_shuffled_delivery(self) -> None:
        texts = ["H", "He", "Hel", "Hell", "Hello", "Hello,", "Hello, world"]
        events = [_delta(i + 1, text=t) for i, t in enumerate(texts)]
        delivered = events[:-1] * 2
        random.Random(7).shuffle(delivered)
        delivered.append(events[-1])

        state = self._state
        for event in delivered:
            state = apply_event(state, event)

        assistant = [i for i in state.items if isinstance(i, MessageItem) and i.role == "assistant"]
        self.assertEqual(["Hello, world"], [i.text for i in assistant])

    def test_delta_without_text_is_ignored(self) -> None:
        state = apply_event(self._state, _delta(1))
        self.assertIs(self._state, state)

    def test_saved_message_opens_a_new_streaming_message(self) -> None:
        state = apply_event(self._state, _delta(1, text="Looking that up"))
        state = apply_event(state, StreamEvent(id="s1", sequence=2, type="assistant_message_saved"))
        state = apply_event(state, _delta(3, text="Found it"))

        assistant = [i for i in state.items if isinstance(i, MessageItem) and i.role == "assistant"]
        self.assertEqual(["Looking that up", "Found it"], [i.text for i in assistant])
        self.assertEqual(["streaming-job1-0", "streaming-job1-1"], [i.id for i in assistant])
        self.assertEqual(1, state.saved_messages)

    def test_apply_event_does_not_mutate_input_state(self) -> None:
        before = self._state
        apply_event(before, _delta(1, text="Hi"))
        self.assertEqual((self._user,), before.items)
        self.assertIsNone(before.streaming_message_id)


if __name__ == "__main__":
    unittest.main()
