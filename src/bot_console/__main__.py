"""CLI entry point for bot-console."""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import date
from typing import Any, Optional

from bot_console.app import ConsoleApp
from bot_console.chat.errors import ChatSessionError
from bot_console.config import AppConfig, load_config
from bot_console.core.types import SessionState
from bot_console.log import setup_logging
from bot_console.reports.filters import apply_report_filters, latest_created_date
from bot_console.reports.pagination import Paginator


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c", "--config", default="config.yaml", help="Path to config file"
    )
    parser.add_argument(
        "-e", "--env", default=".env", help="Path to .env file"
    )


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="bot-console",
        description="Operations console core for conversational bots",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # config-check command
    check_parser = subparsers.add_parser("config-check", help="Validate configuration")
    _add_config_args(check_parser)

    # chat command
    chat_parser = subparsers.add_parser("chat", help="Open an interactive chat session with a bot")
    chat_parser.add_argument("bot_id", help="Bot identifier")
    _add_config_args(chat_parser)

    # report command
    report_parser = subparsers.add_parser("report", help="List a client's reconciled sessions")
    report_parser.add_argument("client_id", help="Client identifier")
    report_parser.add_argument(
        "--sid", action="append", default=[], help="Application SID (repeatable)"
    )
    report_parser.add_argument("--page", type=int, default=1)
    report_parser.add_argument(
        "--page-size", type=int, default=None, help="One of reports.page_sizes"
    )
    report_parser.add_argument(
        "--from", dest="from_date", type=_iso_date, default=None,
        help="First creation day (YYYY-MM-DD), needs --to",
    )
    report_parser.add_argument(
        "--to", dest="to_date", type=_iso_date, default=None,
        help="Last creation day (YYYY-MM-DD), inclusive, needs --from",
    )
    report_parser.add_argument(
        "--duration", default="", help="Keep sessions whose minutes contain this text"
    )
    _add_config_args(report_parser)

    # usage command
    usage_parser = subparsers.add_parser("usage", help="Show a merged per-day metric series")
    usage_parser.add_argument("--family", default="usage")
    usage_parser.add_argument(
        "--range", dest="range_days", type=int, default=None,
        help="Days to show (default: analytics.default_range)",
    )
    _add_config_args(usage_parser)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.command == "config-check":
        _check_config(args.config, args.env)
        return

    if args.command == "report" and (args.from_date is None) != (args.to_date is None):
        parser.error("--from and --to must be given together")

    config = _load_or_exit(args.config, args.env)
    setup_logging(config.log_level, json_output=config.log_json)

    if args.command == "chat":
        asyncio.run(_chat(config, args.bot_id))
    elif args.command == "report":
        page_size = config.reports.page_size if args.page_size is None else args.page_size
        if page_size not in config.reports.page_sizes:
            parser.error(
                f"--page-size must be one of {', '.join(map(str, config.reports.page_sizes))}"
            )
        asyncio.run(_report(
            config,
            args.client_id,
            args.sid,
            page=args.page,
            page_size=page_size,
            from_date=args.from_date,
            to_date=args.to_date,
            duration=args.duration,
        ))
    elif args.command == "usage":
        range_days = config.analytics.default_range if args.range_days is None else args.range_days
        if range_days not in config.analytics.ranges:
            parser.error(
                f"--range must be one of {', '.join(map(str, config.analytics.ranges))}"
            )
        if args.family not in config.analytics.families:
            parser.error(
                f"--family must be one of {', '.join(config.analytics.families)}"
            )
        asyncio.run(_usage(config, args.family, range_days))


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date: {value!r}") from None


def _load_or_exit(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Copy config.example.yaml to config.yaml first")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    config = _load_or_exit(config_path, env_path)
    print(f"Configuration valid: {config_path}")
    print(f"  Storage: {config.storage.backend}", end="")
    if config.storage.backend == "sqlite":
        print(f" ({config.storage.db_path})")
    else:
        print(f" ({config.api.base_url}, token={'set' if config.api.token else 'unset'})")
    print(f"  Webhook timeouts: probe {config.webhook.health_timeout}s, send {config.webhook.send_timeout}s")
    print(f"  Report limits: direct {config.reports.direct_limit}, per SID {config.reports.per_sid_limit}")
    print(f"  Analytics ranges: {', '.join(str(r) for r in config.analytics.ranges)} days")
    for name, family in config.analytics.families.items():
        print(f"    - {name}: {family.primary} vs {family.secondary}")


async def _prompt(text: str) -> str:
    return await asyncio.to_thread(input, text)


def _print_messages(messages: list[Any]) -> None:
    for msg in messages:
        print(f"[{msg.timestamp:%H:%M}] {msg.sender.value}: {msg.message}")


async def _chat(config: AppConfig, bot_id: str) -> None:
    async with ConsoleApp(config) as app:
        controller = app.new_chat(bot_id)
        state = await controller.start()
        if state == SessionState.ERRORED:
            print(f"Error: {controller.error}", file=sys.stderr)
            sys.exit(1)
        _print_messages(controller.messages)

        while controller.state == SessionState.AWAITING_DETAILS:
            details = {}
            for field in controller.bot.user_prompt_fields:
                suffix = " *" if field.required else ""
                details[field.name] = await _prompt(f"{field.label}{suffix}: ")
            try:
                controller.submit_details(details)
            except ChatSessionError as e:
                print(f"Error: {e}", file=sys.stderr)
                continue
            _print_messages(controller.messages[-1:])

        print("Type /disconnect to end the session.")
        while controller.state == SessionState.ACTIVE:
            text = (await _prompt("> ")).strip()
            if not text:
                continue
            if text == "/disconnect":
                outcome = await controller.disconnect()
                if outcome.saved:
                    print("Conversation saved successfully.")
                elif outcome.error:
                    print(f"Error: {outcome.error}", file=sys.stderr)
                break
            outcome = await controller.send_message(text)
            if outcome.reply:
                _print_messages([outcome.reply])
            if outcome.error:
                print(f"Error: {outcome.error}", file=sys.stderr)


async def _report(
    config: AppConfig,
    client_id: str,
    sids: list[str],
    *,
    page_size: int,
    page: int = 1,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    duration: str = "",
) -> None:
    async with ConsoleApp(config) as app:
        client = await app.resolve_client(client_id, sids)
        sessions = await app.reconciler.fetch_for_client(client)

    latest = latest_created_date(sessions)
    sessions = apply_report_filters(
        sessions, from_date=from_date, to_date=to_date, duration=duration
    )
    paginator = Paginator(sessions, page_size)
    paginator.go_to(page)
    first, last = paginator.showing
    print(f"Showing {first} to {last} of {paginator.total_items} results "
          f"(page {paginator.page}/{paginator.total_pages}; "
          f"latest created {latest.isoformat() if latest else '-'})")
    for s in paginator.items:
        started = s.started_at.isoformat() if s.started_at else "-"
        print(
            f"  {s.session_id or '-':<40} {s.channel_type:<9} {started:<32} "
            f"{s.duration_minutes if s.duration_minutes is not None else 0:>4} min "
            f"{len(s.message_log):>3} msgs"
        )


async def _usage(config: AppConfig, family: str, range_days: int) -> None:
    async with ConsoleApp(config) as app:
        metrics = app.merger.family(family)
        series = await app.merger.load(family, range_days)

    print(f"{family}: last {range_days} days")
    print(f"{'date':<12} {metrics.primary:>16} {metrics.secondary:>16}")
    for point in series.points:
        print(f"{point.label:<12} {point.a:>16} {point.b:>16}")


if __name__ == "__main__":
    main()
