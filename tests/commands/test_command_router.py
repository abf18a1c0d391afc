import asyncio
import unittest

from desk_stream.commands.router import CommandRouter


class CommandRouterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.calls: list[tuple[str, str]] = []

        async def on_help() -> None:
            self.calls.append(("help", ""))

        async def on_open(argument: str) -> None:
            self.calls.append(("open", argument))

        async def on_cancel() -> None:
            self.calls.append(("cancel", ""))

        async def on_sessions() -> None:
            self.calls.append(("sessions", ""))

        def on_unknown(command: str) -> None:
            self.calls.append(("unknown", command))

        self.router = CommandRouter(
            on_help=on_help,
            on_open=on_open,
            on_cancel=on_cancel,
            on_sessions=on_sessions,
            on_unknown=on_unknown,
        )

    def test_plain_text_is_not_a_command(self) -> None:
        self.assertFalse(asyncio.run(self.router.try_handle("where is my refund?")))
        self.assertEqual([], self.calls)

    def test_commands_dispatch_with_arguments(self) -> None:
        async def scenario() -> list[bool]:
            return [
                await self.router.try_handle("/help"),
                await self.router.try_handle("  /open   chat-42 "),
                await self.router.try_handle("/open"),
                await self.router.try_handle("/cancel"),
                await self.router.try_handle("/sessions"),
                await self.router.try_handle("/frobnicate now"),
            ]

        self.assertEqual([True] * 6, asyncio.run(scenario()))
        self.assertEqual(
            [
                ("help", ""),
                ("open", "chat-42"),
                ("open", ""),
                ("cancel", ""),
                ("sessions", ""),
                ("unknown", "/frobnicate now"),
            ],
            self.calls,
        )


if __name__ == "__main__":
    unittest.main()
