"""CLI entry point for planner-bot."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Awaitable, Callable

from planner_bot.app import PlannerBotApp
from planner_bot.config import AppConfig, load_config
from planner_bot.log import setup_logging


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    parser.add_argument("-e", "--env", default=".env", help="Path to .env file")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="planner-bot",
        description="Conversational planning assistant for tasks, events, notes and projects",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    _add_config_args(subparsers.add_parser("config-check", help="Validate configuration"))
    _add_config_args(subparsers.add_parser("model-info", help="Show AI model configuration"))

    user_parser = subparsers.add_parser("user-add", help="Register a user")
    _add_config_args(user_parser)
    user_parser.add_argument("name", help="Display name")
    user_parser.add_argument("--email", default=None)
    user_parser.add_argument("--language", choices=["it", "en"], default=None)
    user_parser.add_argument("--timezone", default=None, help="IANA zone, e.g. Europe/Rome")

    chat_parser = subparsers.add_parser("chat", help="Chat with the assistant")
    _add_config_args(chat_parser)
    chat_parser.add_argument("-u", "--user", required=True, help="User id")
    chat_parser.add_argument("--conversation", default=None, help="Continue an existing conversation")
    chat_parser.add_argument("-m", "--message", default=None, help="Send one message and exit")

    list_parser = subparsers.add_parser("conversations", help="List recent conversations")
    _add_config_args(list_parser)
    list_parser.add_argument("-u", "--user", required=True, help="User id")
    list_parser.add_argument("-n", "--limit", type=int, default=10)

    show_parser = subparsers.add_parser("show", help="Show one conversation")
    _add_config_args(show_parser)
    show_parser.add_argument("-u", "--user", required=True, help="User id")
    show_parser.add_argument("conversation_id")

    delete_parser = subparsers.add_parser("delete", help="Delete one conversation")
    _add_config_args(delete_parser)
    delete_parser.add_argument("-u", "--user", required=True, help="User id")
    delete_parser.add_argument("conversation_id")

    usage_parser = subparsers.add_parser("usage", help="Show token usage and cost")
    _add_config_args(usage_parser)
    usage_parser.add_argument("-u", "--user", required=True, help="User id")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(2)

    if args.command == "config-check":
        _check_config(args.config, args.env)
    elif args.command == "model-info":
        _model_info(args.config, args.env)
    elif args.command == "user-add":
        _run(args, _user_add)
    elif args.command == "chat":
        _run(args, _chat)
    elif args.command == "conversations":
        _run(args, lambda app, a: _print_result(app.handler.list_recent_conversations(a.user, a.limit)))
    elif args.command == "show":
        _run(args, lambda app, a: _print_result(app.handler.get_conversation(a.user, a.conversation_id)))
    elif args.command == "delete":
        _run(args, lambda app, a: _print_result(app.handler.delete_conversation(a.user, a.conversation_id)))
    elif args.command == "usage":
        _run(args, lambda app, a: _print_result(app.handler.usage_stats(a.user)))


def _load(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Run 'python install.py' first or copy config.example.yaml to config.yaml")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    config = _load(config_path, env_path)
    print(f"Configuration valid: {config_path}")
    print(f"  Data directory: {config.data_dir}")
    print(f"  Assistant: {config.assistant.app_name} ({config.assistant.language}, {config.assistant.timezone})")
    print(f"  AI backend: {config.ai.backend} [{config.ai.model}]")
    section = getattr(config, config.ai.backend, None)
    if section is None:
        print(f"  Warning: no '{config.ai.backend}' section configured", file=sys.stderr)
    print(f"  Storage: {config.storage.db_path}")


def _model_info(config_path: str, env_path: str) -> None:
    """Show AI model information."""
    config = _load(config_path, env_path)
    ai = config.ai
    print("AI Model Configuration")
    print("=" * 50)
    print(f"    Backend : {ai.backend}")
    print(f"    Model   : {ai.model}")
    print(f"    Tokens  : {ai.max_tokens}")
    print(f"    Temp    : {ai.temperature}")
    print(f"    Retries : {ai.max_retries} (backoff {ai.retry_backoff}s)")
    print(f"    Cost    : {ai.input_cost_per_1k}c in / {ai.output_cost_per_1k}c out per 1K tokens")
    limit = ai.rate_limit_per_hour
    print(f"    Limit   : {f'{limit} turns/hour' if limit else '(none)'}")
    print()


async def _print_result(result: Awaitable[dict[str, Any]]) -> None:
    data = await result
    print(json.dumps(data, indent=2, ensure_ascii=False))
    if not data.get("success"):
        sys.exit(1)


async def _user_add(app: PlannerBotApp, args: argparse.Namespace) -> None:
    user = await app.user_repo.create(
        name=args.name, email=args.email, language=args.language, timezone=args.timezone
    )
    print(user.id)


async def _chat(app: PlannerBotApp, args: argparse.Namespace) -> None:
    conversation_id = args.conversation
    if args.message is not None:
        await _print_result(app.handler.send_message(args.user, args.message, conversation_id))
        return

    print("Type a message, or Ctrl-D to quit.")
    while True:
        try:
            text = await asyncio.to_thread(input, "> ")
        except EOFError:
            print()
            break
        if not text.strip():
            continue
        result = await app.handler.send_message(args.user, text, conversation_id)
        if result["success"]:
            conversation_id = result["conversationId"]
            print(result["assistantText"])
        else:
            print(f"[{result['error']}]", file=sys.stderr)


def _run(
    args: argparse.Namespace,
    command: Callable[[PlannerBotApp, argparse.Namespace], Awaitable[None]],
) -> None:
    """Load config, start the application, run one command, and stop."""
    config = _load(args.config, args.env)
    setup_logging(config.log_level, config.log_format)

    async def _async_main() -> None:
        app = PlannerBotApp(config)
        await app.start()
        try:
            await command(app, args)
        finally:
            await app.stop()

    try:
        asyncio.run(_async_main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
