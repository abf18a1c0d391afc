import asyncio
import sys

from dotenv import load_dotenv
from loguru import logger

from desk_stream.app_config import API_TOKEN_ENV_VAR, load_json_config, parse_stream_config, resolve_api_token
from desk_stream.backends.http_backend import HttpJobBackend
from desk_stream.commands.router import CommandRouter
from desk_stream.console_view import ConsoleView
from desk_stream.coordinator import StreamSessionCoordinator
from desk_stream.errors import DeskStreamError
from desk_stream.logging_config import setup_logging
from desk_stream.services.session_controller import SessionController
from desk_stream.view import ActiveConversation

_LINE_PREFIX = "assistant> "
_USER_PROMPT = "you> "

_HELP = """\
Commands:
  /open <chatId>   switch to a conversation (reconnects to a running reply)
  /cancel          stop following the current conversation's job
  /sessions        list sessions the client is following
  /help            show this help
  exit | quit      leave
Anything else is sent as a message to the open conversation."""


async def main() -> None:
    load_dotenv()

    config = parse_stream_config(load_json_config())
    log_descriptions = setup_logging(level=config.log_level, consumers=config.log_consumers)

    token = resolve_api_token()
    if not token:
        logger.error(f"{API_TOKEN_ENV_VAR} environment variable is required.")
        sys.exit(1)

    backend = HttpJobBackend(
        config.base_url,
        token=token,
        company_id=config.company_id,
        employee_id=config.employee_id,
        timeout_seconds=config.request_timeout_seconds,
        status_poll_interval_seconds=config.status_poll_interval_seconds,
    )
    active = ActiveConversation(sys.argv[1] if len(sys.argv) > 1 else None)
    view = ConsoleView(line_prefix=_LINE_PREFIX)
    coordinator = StreamSessionCoordinator(
        backend=backend,
        view=view,
        active_conversation=active.get,
        config=config,
    )
    controller = SessionController(line_prefix=_LINE_PREFIX)

    async def on_help() -> None:
        print(_HELP)

    async def on_open(conversation_id: str) -> None:
        if not conversation_id:
            print(f"{_LINE_PREFIX}Usage: /open <chatId>")
            return
        active.set(conversation_id)
        view.reset()
        await coordinator.open_conversation(conversation_id)

    async def on_cancel() -> None:
        conversation_id = active.get()
        session = coordinator.session_for(conversation_id) if conversation_id else None
        if session is None:
            print(f"{_LINE_PREFIX}Nothing to cancel")
            return
        await coordinator.stop(session)
        view.on_responding_changed(False)

    async def on_sessions() -> None:
        sessions = coordinator.sessions()
        current_ids = {s.id for s in sessions if coordinator.is_current(s)}
        for line in controller.format_session_list(sessions, current_ids=current_ids):
            print(line)

    def on_unknown(command: str) -> None:
        print(f"{_LINE_PREFIX}Unknown command: {command} (try /help)")

    router = CommandRouter(
        on_help=on_help,
        on_open=on_open,
        on_cancel=on_cancel,
        on_sessions=on_sessions,
        on_unknown=on_unknown,
    )

    print("desk-stream (type 'exit' to quit, '/help' for commands)")
    print(f"API: {config.base_url}")
    if log_descriptions:
        print(f"Logging: {', '.join(log_descriptions)}")
    print()

    try:
        if active.get():
            await coordinator.open_conversation(active.get())

        while True:
            try:
                user_input = await asyncio.to_thread(input, _USER_PROMPT)
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()
            if trimmed in ("exit", "quit"):
                break
            if not trimmed:
                continue
            if await router.try_handle(trimmed):
                continue

            conversation_id = active.get()
            if conversation_id is None:
                print(f"{_LINE_PREFIX}Open a conversation first: /open <chatId>")
                continue
            try:
                await coordinator.submit_turn(conversation_id, trimmed)
            except DeskStreamError as ex:
                logger.error(f"{ex}")
    finally:
        await coordinator.shutdown()
        await backend.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
