import json
import unittest

from desk_stream.models import StreamEvent, ToolCallItem
from desk_stream.streaming import StreamState, apply_event, resolve_tool_type


def _start(event_id: str, **payload) -> StreamEvent:
    return StreamEvent(id=event_id, sequence=1, type="tool_call_start", payload=payload)


def _complete(event_id: str, **payload) -> StreamEvent:
    return StreamEvent(id=event_id, sequence=2, type="tool_call_complete", payload=payload)


class ToolCallTrackerTests(unittest.TestCase):
    def test_start_then_complete_produces_one_completed_item(self) -> None:
        state = apply_event(StreamState(), _start("e1", id="t1", name="lookup_ticket", arguments={"ticket": 42}))
        self.assertEqual("in_progress", state.items[0].status)

        state = apply_event(state, _complete("e2", id="t1", name="lookup_ticket", result={"state": "open"}))

        self.assertEqual(1, len(state.items))
        item = state.items[0]
        self.assertIsInstance(item, ToolCallItem)
        self.assertEqual("t1", item.id)
        self.assertEqual("function_call", item.tool_type)
        self.assertEqual("completed", item.status)
        self.assertEqual({"ticket": 42}, json.loads(item.arguments_serialized))
        self.assertEqual({"state": "open"}, json.loads(item.output_serialized))

    def test_complete_without_start_is_dropped(self) -> None:
        state = StreamState()
        result = apply_event(state, _complete("e1", id="missing", result={}))
        self.assertIs(state, result)
        self.assertEqual((), result.items)

    def test_repeated_start_merges_fields(self) -> None:
        state = apply_event(StreamState(), _start("e1", id="t1"))
        state = apply_event(state, _start("e2", id="t1", name="web_search", arguments='{"q": "refunds"}'))

        self.assertEqual(1, len(state.items))
        item = state.items[0]
        self.assertEqual("web_search", item.name)
        self.assertEqual("web_search_call", item.tool_type)
        self.assertEqual('{"q": "refunds"}', item.arguments_serialized)
        self.assertEqual("in_progress", item.status)

    def test_restart_of_completed_call_keeps_it_completed(self) -> None:
        state = apply_event(StreamState(), _start("e1", id="t1", name="file_search"))
        state = apply_event(state, _complete("e2", id="t1"))
        state = apply_event(state, _start("e3", id="t1", name="file_search"))

        self.assertEqual("completed", state.items[0].status)

    def test_tool_type_resolution(self) -> None:
        self.assertEqual("file_search_call", resolve_tool_type("file_search"))
        self.assertEqual("web_search_call", resolve_tool_type("web_search"))
        self.assertEqual("code_interpreter_call", resolve_tool_type("code_interpreter"))
        self.assertEqual("function_call", resolve_tool_type("create_article"))
        self.assertEqual("function_call", resolve_tool_type(None))
        self.assertEqual("web_search_call", resolve_tool_type("create_article", "web_search_call"))

    def test_explicit_tool_type_in_event_wins(self) -> None:
        state = apply_event(StreamState(), _start("e1", id="t1", name="web_search", toolType="function_call"))
        self.assertEqual("function_call", state.items[0].tool_type)


if __name__ == "__main__":
    unittest.main()
