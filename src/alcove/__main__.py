"""CLI entry point for Alcove."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import uvicorn
import yaml

from .config import AppConfig, _get_config_path, load_config


def _print_setup_guide(config_path: Path) -> None:
    print(
        f"\nConfiguration is read from {config_path}, for example:\n\n"
        "ai:\n"
        '  base_url: "http://127.0.0.1:8377"\n'
        '  model: "claude-sonnet-4-20250514"\n'
        "tools:\n"
        "  bash_timeout: 120\n"
        "chat:\n"
        "  max_turns: 20\n"
        "\nOr set environment variables:\n"
        "  ALCOVE_PROXY_URL=http://127.0.0.1:8377\n"
        "  ALCOVE_API_KEY=your-api-key\n"
        "  ALCOVE_MODEL=claude-sonnet-4-20250514\n",
        file=sys.stderr,
    )


def _load_config_or_exit() -> AppConfig:
    config_path = _get_config_path()
    try:
        return load_config(config_path)
    except (ValueError, yaml.YAMLError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        _print_setup_guide(config_path)
        sys.exit(1)


def _run_server(config: AppConfig) -> None:
    """Launch the HTTP API server."""
    print(f"  Proxy: {config.ai.base_url}")
    print(f"  Model: {config.ai.model}")
    print(f"  Data dir: {config.app.data_dir}")

    from .app import create_app

    app = create_app(config)

    print(f"\nStarting Alcove at http://{config.app.host}:{config.app.port}")
    if config.app.host in ("0.0.0.0", "::"):
        print("  WARNING: Binding to all interfaces. The API is accessible from the network.", file=sys.stderr)

    uvicorn.run(app, host=config.app.host, port=config.app.port, log_level="info")


async def _run_chat(config: AppConfig, prompt: str, conversation_id: str | None, model: str | None) -> int:
    from .app import build_controller
    from .cli import renderer
    from .services.chat_controller import TERMINAL_EVENTS
    from .services.event_bus import conversation_channel

    controller = build_controller(config)
    try:
        if conversation_id:
            if controller.store.get(conversation_id) is None:
                renderer.render_error(f"Conversation not found: {conversation_id}")
                return 1
        else:
            conversation_id = controller.create_conversation(model=model).id

        channel = conversation_channel(conversation_id)
        queue = controller.event_bus.subscribe(channel)
        send_task = asyncio.create_task(controller.send(conversation_id, prompt, model=model))
        try:
            while True:
                event = await queue.get()
                renderer.render_event(event)
                if event["type"] in TERMINAL_EVENTS:
                    break
        except asyncio.CancelledError:
            controller.abort(conversation_id)
            raise
        finally:
            controller.event_bus.unsubscribe(channel, queue)

        try:
            await send_task
        except Exception:
            # Already rendered from the stream-error event
            return 1
        renderer.console.print(f"[grey62]conversation {conversation_id}[/grey62]")
        return 0
    finally:
        await controller.ai_service.aclose()


def _list_conversations(config: AppConfig) -> None:
    from .cli import renderer
    from .services.storage import ConversationStore

    renderer.render_conversation_list(ConversationStore(config.app.conversations_dir).list())


def _show_conversation(config: AppConfig, conversation_id: str) -> int:
    from .cli import renderer
    from .services.storage import ConversationStore

    conv = ConversationStore(config.app.conversations_dir).get(conversation_id)
    if conv is None:
        renderer.render_error(f"Conversation not found: {conversation_id}")
        return 1
    renderer.render_conversation(conv)
    return 0


def _delete_conversation(config: AppConfig, conversation_id: str) -> None:
    from .services.storage import ConversationStore

    ConversationStore(config.app.conversations_dir).delete(conversation_id)
    print(f"Deleted {conversation_id}")


def main() -> None:
    parser = argparse.ArgumentParser(prog="alcove", description="Alcove - streaming tool-calling chat over a local proxy")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("serve", help="Run the HTTP API server")

    chat_parser = subparsers.add_parser("chat", help="Send one prompt and stream the reply")
    chat_parser.add_argument("prompt", help="Prompt text")
    chat_parser.add_argument(
        "-c", "--conversation", dest="conversation_id",
        default=None, help="Continue an existing conversation by ID",
    )
    chat_parser.add_argument("-m", "--model", default=None, help="Model override for this send")

    subparsers.add_parser("list", help="List stored conversations")

    show_parser = subparsers.add_parser("show", help="Print a stored conversation")
    show_parser.add_argument("conversation_id")

    delete_parser = subparsers.add_parser("delete", help="Delete a stored conversation")
    delete_parser.add_argument("conversation_id")

    args = parser.parse_args()

    if args.debug:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config = _load_config_or_exit()

    if args.command == "chat":
        try:
            code = asyncio.run(_run_chat(config, args.prompt, args.conversation_id, args.model))
        except KeyboardInterrupt:
            code = 130
        sys.exit(code)
    elif args.command == "list":
        _list_conversations(config)
    elif args.command == "show":
        sys.exit(_show_conversation(config, args.conversation_id))
    elif args.command == "delete":
        _delete_conversation(config, args.conversation_id)
    else:
        _run_server(config)


if __name__ == "__main__":
    main()
