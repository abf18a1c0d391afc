import unittest

from desk_stream.converter import message_to_items, messages_to_items, tool_call_to_item
from desk_stream.models import MessageItem, ToolCallItem


class ConverterTests(unittest.TestCase):
    def test_user_message_becomes_one_item(self) -> None:
        items = message_to_items({"id": "m1", "role": "user", "content": "Where is my refund?"})
        self.assertEqual([MessageItem(id="m1", role="user", text="Where is my refund?")], items)

    def test_assistant_tool_calls_precede_the_text(self) -> None:
        items = message_to_items(
            {
                "id": "m2",
                "role": "assistant",
                "content": "It was issued yesterday.",
                "toolCalls": [
                    {"id": "t1", "name": "lookup_refund", "arguments": {"order": 7}, "output": {"state": "issued"}},
                    {"id": "t2", "name": "web_search", "status": "in_progress"},
                ],
            }
        )

        self.assertEqual(["t1", "t2", "m2"], [item.id for item in items])
        first, second, message = items
        self.assertIsInstance(first, ToolCallItem)
        self.assertEqual("function_call", first.tool_type)
        self.assertEqual("completed", first.status)
        self.assertEqual('{"order": 7}', first.arguments_serialized)
        self.assertEqual('{"state": "issued"}', first.output_serialized)
        self.assertEqual("web_search_call", second.tool_type)
        self.assertEqual("in_progress", second.status)
        self.assertEqual("It was issued yesterday.", message.text)

    def test_stored_tool_type_is_kept(self) -> None:
        item = tool_call_to_item({"id": "t1", "name": "anything", "type": "file_search_call"})
        self.assertEqual("file_search_call", item.tool_type)

    def test_missing_content_becomes_empty_text(self) -> None:
        items = messages_to_items([{"id": "m1", "role": "assistant"}, {"id": "m2", "role": "user", "content": "ok"}])
        self.assertEqual(["", "ok"], [item.text for item in items])


if __name__ == "__main__":
    unittest.main()
