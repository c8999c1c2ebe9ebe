from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any

from .api import serve
from .config import Config, ConfigError, load_config, load_sources_file
from .context import build_context
from .db import connect_db
from .mcp_server import main as mcp_main
from .migrations import get_schema_version
from .services.sources_service import import_sources, list_sources, seed_default_sources
from .tools import ToolDispatcher
from .utils import configure_logging, log_event
from .worker import run_worker


def _setup_logging(stream: Any = None) -> logging.Logger:
    return configure_logging("newsdesk", stream=stream)


def _load(args: argparse.Namespace, logger: logging.Logger) -> Config | None:
    try:
        return load_config(args.config)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return None


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


async def _dispatch(config: Config, logger: logging.Logger, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    ctx = build_context(config, logger=logger)
    try:
        return await ToolDispatcher(ctx).dispatch(name, arguments)
    finally:
        await ctx.close()


def _run_tool(args: argparse.Namespace, logger: logging.Logger, name: str, arguments: dict[str, Any]) -> int:
    config = _load(args, logger)
    if config is None:
        return 1
    arguments = {key: value for key, value in arguments.items() if value is not None}
    envelope = asyncio.run(_dispatch(config, logger, name, arguments))
    _print(envelope)
    return 0 if envelope.get("success") else 1


def _cmd_serve(args: argparse.Namespace, logger: logging.Logger) -> int:
    try:
        serve(args.host, args.port, args.config)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1
    return 0


def _cmd_mcp(args: argparse.Namespace, logger: logging.Logger) -> int:
    try:
        return mcp_main(args.config)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1


def _cmd_worker(args: argparse.Namespace, logger: logging.Logger) -> int:
    config = _load(args, logger)
    if config is None:
        return 1
    return asyncio.run(run_worker(config, args.interval, args.once, logger))


def _cmd_sync(args: argparse.Namespace, logger: logging.Logger) -> int:
    return _run_tool(
        args,
        logger,
        "sync_news_data",
        {"force": args.force, "sources": args.source or None, "maxAge": args.max_age},
    )


def _cmd_latest(args: argparse.Namespace, logger: logging.Logger) -> int:
    return _run_tool(args, logger, "get_latest_ai_news", {"limit": args.limit, "category": args.category})


def _cmd_search(args: argparse.Namespace, logger: logging.Logger) -> int:
    return _run_tool(
        args,
        logger,
        "search_ai_news",
        {
            "query": args.query,
            "limit": args.limit,
            "dateRange": args.date_range,
            "category": args.category,
            "source": args.source,
            "tags": args.tag or None,
        },
    )


def _cmd_summary(args: argparse.Namespace, logger: logging.Logger) -> int:
    return _run_tool(
        args,
        logger,
        "get_news_summary",
        {"newsId": args.article_id, "includeKeyPoints": not args.no_key_points},
    )


def _cmd_trends(args: argparse.Namespace, logger: logging.Logger) -> int:
    return _run_tool(
        args,
        logger,
        "get_ai_trends",
        {"timeframe": args.timeframe, "includeStats": not args.no_stats},
    )


def _cmd_topics(args: argparse.Namespace, logger: logging.Logger) -> int:
    return _run_tool(args, logger, "get_trending_topics", {"timeframe": args.timeframe})


def _cmd_stats(args: argparse.Namespace, logger: logging.Logger) -> int:
    return _run_tool(args, logger, "get_database_stats", {})


def _cmd_cleanup(args: argparse.Namespace, logger: logging.Logger) -> int:
    return _run_tool(args, logger, "cleanup_old_data", {"daysOld": args.days})


def _cmd_llm_check(args: argparse.Namespace, logger: logging.Logger) -> int:
    config = _load(args, logger)
    if config is None:
        return 1

    async def _check() -> dict[str, Any]:
        ctx = build_context(config, logger=logger)
        try:
            summarizer = ctx.analyzer.external
            available = summarizer.is_available()
            reachable = await summarizer.test_connection() if available else False
        finally:
            await ctx.close()
        return {"available": available, "reachable": reachable}

    status = asyncio.run(_check())
    _print(status)
    return 0 if status["reachable"] else 1


def _cmd_sources_list(args: argparse.Namespace, logger: logging.Logger) -> int:
    config = _load(args, logger)
    if config is None:
        return 1

    async def _list() -> list[dict[str, Any]]:
        ctx = build_context(config, logger=logger)
        try:
            sources = await list_sources(ctx.conn, args.status, probe=ctx.fetcher.probe)
        finally:
            await ctx.close()
        return [source.to_dict() for source in sources]

    for item in asyncio.run(_list()):
        log_event(
            logger,
            logging.INFO,
            "source",
            source_id=item["id"],
            name=item["name"],
            kind=item["kind"],
            active=item["isActive"],
            url=item["url"],
        )
    return 0


def _cmd_sources_seed(args: argparse.Namespace, logger: logging.Logger) -> int:
    config = _load(args, logger)
    if config is None:
        return 1
    conn = connect_db(config.paths.state_db)
    try:
        count = seed_default_sources(conn)
    finally:
        conn.close()
    log_event(logger, logging.INFO, "sources_seed_complete", count=count)
    return 0


def _cmd_sources_import(args: argparse.Namespace, logger: logging.Logger) -> int:
    config = _load(args, logger)
    if config is None:
        return 1
    sources_path = args.path
    if sources_path is None:
        candidate = os.path.join(os.path.dirname(config.paths.state_db), "sources.yml")
        if not os.path.exists(candidate):
            log_event(logger, logging.ERROR, "sources_import_error", error="no sources.yml found")
            return 1
        sources_path = candidate
    try:
        items = load_sources_file(sources_path)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "sources_import_error", error=str(exc))
        return 1
    conn = connect_db(config.paths.state_db)
    try:
        count = import_sources(conn, items)
    except ValueError as exc:
        log_event(logger, logging.ERROR, "sources_import_error", error=str(exc))
        return 1
    finally:
        conn.close()
    log_event(logger, logging.INFO, "sources_import_complete", path=sources_path, count=count)
    return 0


def _cmd_db_migrate(args: argparse.Namespace, logger: logging.Logger) -> int:
    config = _load(args, logger)
    if config is None:
        return 1
    conn = connect_db(config.paths.state_db)
    try:
        version = get_schema_version(conn)
    finally:
        conn.close()
    log_event(logger, logging.INFO, "db_migrated", path=config.paths.state_db, version=version)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="newsdesk", description="AI news aggregation CLI")
    parser.add_argument(
        "--config",
        dest="config",
        default=None,
        help="Path to config.yml (defaults to NEWSDESK_CONFIG_PATH)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--port", type=int, default=None)
    serve_parser.set_defaults(func=_cmd_serve)

    mcp_parser = subparsers.add_parser("mcp", help="Run the MCP server on stdio")
    mcp_parser.set_defaults(func=_cmd_mcp)

    worker_parser = subparsers.add_parser("worker", help="Run the periodic sync worker")
    worker_parser.add_argument("--interval", type=int, default=None, help="Minutes between syncs")
    worker_parser.add_argument("--once", action="store_true", help="Run one forced sync and exit")
    worker_parser.set_defaults(func=_cmd_worker)

    sync_parser = subparsers.add_parser("sync", help="Sync sources into the database")
    sync_parser.add_argument("--force", action="store_true", help="Ignore the max age limit")
    sync_parser.add_argument("--source", action="append", default=[], help="Source name (repeatable)")
    sync_parser.add_argument("--max-age", type=int, default=None, help="Minutes since last sync")
    sync_parser.set_defaults(func=_cmd_sync)

    latest_parser = subparsers.add_parser("latest", help="Show the latest news")
    latest_parser.add_argument("--limit", type=int, default=10)
    latest_parser.add_argument("--category", default=None)
    latest_parser.set_defaults(func=_cmd_latest)

    search_parser = subparsers.add_parser("search", help="Search news")
    search_parser.add_argument("query")
    search_parser.add_argument("--limit", type=int, default=10)
    search_parser.add_argument("--date-range", choices=["today", "week", "month"], default="week")
    search_parser.add_argument("--category", default=None)
    search_parser.add_argument("--source", default=None)
    search_parser.add_argument("--tag", action="append", default=[])
    search_parser.set_defaults(func=_cmd_search)

    summary_parser = subparsers.add_parser("summary", help="Summarize one article")
    summary_parser.add_argument("article_id")
    summary_parser.add_argument("--no-key-points", action="store_true")
    summary_parser.set_defaults(func=_cmd_summary)

    trends_parser = subparsers.add_parser("trends", help="Show the trend report")
    trends_parser.add_argument("--timeframe", choices=["week", "month", "quarter"], default="month")
    trends_parser.add_argument("--no-stats", action="store_true")
    trends_parser.set_defaults(func=_cmd_trends)

    topics_parser = subparsers.add_parser("topics", help="Show trending topics")
    topics_parser.add_argument("--timeframe", choices=["today", "week", "month"], default="week")
    topics_parser.set_defaults(func=_cmd_topics)

    sources_parser = subparsers.add_parser("sources", help="Manage sources")
    sources_subparsers = sources_parser.add_subparsers(dest="sources_command", required=True)

    sources_list = sources_subparsers.add_parser("list", help="List sources")
    sources_list.add_argument("--status", action="store_true", help="Probe each source")
    sources_list.set_defaults(func=_cmd_sources_list)

    sources_seed = sources_subparsers.add_parser("seed", help="Write the built-in sources")
    sources_seed.set_defaults(func=_cmd_sources_seed)

    sources_import_parser = sources_subparsers.add_parser("import", help="Import sources from YAML")
    sources_import_parser.add_argument("path", nargs="?", default=None)
    sources_import_parser.set_defaults(func=_cmd_sources_import)

    stats_parser = subparsers.add_parser("stats", help="Database statistics")
    stats_parser.set_defaults(func=_cmd_stats)

    cleanup_parser = subparsers.add_parser("cleanup", help="Delete old articles")
    cleanup_parser.add_argument("--days", type=int, default=30)
    cleanup_parser.set_defaults(func=_cmd_cleanup)

    llm_parser = subparsers.add_parser("llm", help="External summarizer tools")
    llm_subparsers = llm_parser.add_subparsers(dest="llm_command", required=True)
    llm_check = llm_subparsers.add_parser("check", help="Check the summarizer endpoint")
    llm_check.set_defaults(func=_cmd_llm_check)

    db_parser = subparsers.add_parser("db", help="Database maintenance")
    db_subparsers = db_parser.add_subparsers(dest="db_command", required=True)
    db_migrate = db_subparsers.add_parser("migrate", help="Apply database migrations")
    db_migrate.set_defaults(func=_cmd_db_migrate)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    # The MCP transport owns stdout.
    logger = _setup_logging(sys.stderr if args.command == "mcp" else None)
    return args.func(args, logger)


if __name__ == "__main__":
    raise SystemExit(main())
