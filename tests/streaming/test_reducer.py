import unittest

from desk_stream.models import MessageItem, StreamEvent, ToolCallItem
from desk_stream.streaming import StreamState, apply_event, error_message


class ReducerTests(unittest.TestCase):
    def test_unknown_event_type_leaves_state_unchanged(self) -> None:
        state = StreamState(items=(MessageItem(id="u1", role="user", text="hi"),))
        result = apply_event(state, StreamEvent(id="e1", sequence=1, type="heartbeat", payload={"text": "x"}))
        self.assertIs(state, result)

    def test_error_event_records_message(self) -> None:
        state = apply_event(StreamState(), StreamEvent(id="e1", sequence=1, type="error", payload={"error": "model timed out"}))
        self.assertEqual("model timed out", state.error)
        self.assertEqual((), state.items)

    def test_error_message_falls_back_to_generic_text(self) -> None:
        self.assertEqual("boom", error_message(StreamEvent(id="e1", sequence=1, type="error", payload={"message": "boom"})))
        self.assertEqual(
            "The assistant reported an error",
            error_message(StreamEvent(id="e2", sequence=2, type="error")),
        )

    def test_text_and_tool_calls_interleave_in_arrival_order(self) -> None:
        events = [
            StreamEvent(id="e1", sequence=1, type="message_delta", payload={"text": "Let me check."}),
            StreamEvent(id="e2", sequence=2, type="assistant_message_saved"),
            StreamEvent(id="e3", sequence=3, type="tool_call_start", payload={"id": "t1", "name": "web_search"}),
            StreamEvent(id="e4", sequence=4, type="tool_call_complete", payload={"id": "t1", "output": "3 hits"}),
            StreamEvent(id="e5", sequence=5, type="message_delta", payload={"text": "Found three."}),
        ]
        state = StreamState(message_prefix="streaming-j")
        for event in events:
            state = apply_event(state, event)

        kinds = [
            ("tool", item.id) if isinstance(item, ToolCallItem) else ("message", item.text)
            for item in state.items
        ]
        self.assertEqual(
            [("message", "Let me check."), ("tool", "t1"), ("message", "Found three.")],
            kinds,
        )
        self.assertEqual("3 hits", state.items[1].output_serialized)


if __name__ == "__main__":
    unittest.main()
