from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import time
from datetime import datetime, timedelta
from typing import Any, Callable

from . import storage
from .config import Config, ConfigError, load_config
from .db import connect_db
from .fanout import settle_all
from .ingest import Fetcher
from .models import Source, SyncResult, SyncStatus
from .services.sources_service import list_active_sources
from .utils import configure_logging, log_event, utc_now

Clock = Callable[[], datetime]


class SyncScheduler:
    """Refreshes sources into the Store, rate-limited by per-source last sync time."""

    def __init__(
        self,
        conn: Any,
        fetcher: Fetcher,
        config: Config,
        logger: logging.Logger | None = None,
        aggregator: Any = None,
        clock: Clock | None = None,
    ) -> None:
        self.conn = conn
        self.fetcher = fetcher
        self.config = config
        self.logger = logger or logging.getLogger("newsdesk.worker")
        self.aggregator = aggregator
        self.clock = clock or utc_now
        self.last_sync: dict[str, datetime] = {}
        self._task: asyncio.Task | None = None

    def _is_fresh(self, source: Source, max_age: int, now: datetime) -> bool:
        last = self.last_sync.get(source.id)
        if last is None:
            return False
        return now - last < timedelta(minutes=max_age)

    async def sync_news(
        self,
        force: bool = False,
        sources: list[str] | None = None,
        max_age: int | None = None,
    ) -> SyncResult:
        started = time.monotonic()
        if max_age is None:
            max_age = self.config.sync.default_max_age_minutes
        log_event(
            self.logger,
            logging.INFO,
            "sync_started",
            force=force,
            sources=",".join(sources or []) or "all",
            max_age=max_age,
        )
        selected = list_active_sources(self.conn)
        if sources:
            wanted = set(sources)
            selected = [source for source in selected if source.name in wanted]

        now = self.clock()
        eligible: list[Source] = []
        skipped = 0
        for source in selected:
            if not force and self._is_fresh(source, max_age, now):
                skipped += 1
                log_event(
                    self.logger,
                    logging.DEBUG,
                    "source_sync_skipped",
                    source=source.name,
                    last_sync=self.last_sync[source.id].isoformat(),
                )
                continue
            eligible.append(source)

        outcomes = await settle_all((source.name, self._sync_source(source)) for source in eligible)
        errors: list[str] = []
        added = 0
        for outcome in outcomes:
            if outcome.ok:
                added += outcome.value
            else:
                reason = getattr(outcome.error, "reason", None) or str(outcome.error)
                errors.append(f"{outcome.key}: {reason}")
                log_event(
                    self.logger,
                    logging.ERROR,
                    "source_sync_failed",
                    source=outcome.key,
                    error=str(outcome.error),
                )

        if added and self.aggregator is not None:
            self.aggregator.clear_cache()

        result = SyncResult(
            sources_processed=len(eligible),
            sources_skipped=skipped,
            news_added=added,
            errors=errors,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        log_event(
            self.logger,
            logging.INFO,
            "sync_completed",
            processed=result.sources_processed,
            skipped=result.sources_skipped,
            added=result.news_added,
            errors=len(result.errors),
            duration_ms=result.duration_ms,
        )
        return result

    async def _sync_source(self, source: Source) -> int:
        articles = await self.fetcher.fetch_strict(source)
        added = storage.insert_articles(self.conn, articles) if articles else 0
        synced_at = self.clock()
        self.last_sync[source.id] = synced_at
        storage.touch_source(self.conn, source.id, synced_at)
        log_event(
            self.logger,
            logging.INFO,
            "source_synced",
            source=source.name,
            fetched=len(articles),
            added=added,
        )
        return added

    def start_periodic_sync(self, interval_minutes: int | None = None) -> asyncio.Task:
        if self._task is not None and not self._task.done():
            return self._task
        interval = interval_minutes or self.config.sync.interval_minutes
        log_event(self.logger, logging.INFO, "periodic_sync_started", interval_minutes=interval)
        self._task = asyncio.get_running_loop().create_task(self._periodic(interval * 60))
        return self._task

    async def _periodic(self, interval_seconds: float) -> None:
        while True:
            try:
                await self.sync_news()
            except Exception as exc:  # noqa: BLE001
                log_event(self.logger, logging.ERROR, "periodic_sync_failed", error=str(exc))
            await asyncio.sleep(interval_seconds)

    @property
    def periodic_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        log_event(self.logger, logging.INFO, "periodic_sync_stopped")

    def get_sync_status(self) -> SyncStatus:
        sources = storage.list_sources(self.conn)
        return SyncStatus(
            last_sync_times=dict(self.last_sync),
            total_sources=len(sources),
            active_sources=sum(1 for source in sources if source.is_active),
            periodic_running=self.periodic_running,
        )

    async def cleanup_old_data(self, days_old: int = 30) -> int:
        deleted = storage.delete_articles_older_than(self.conn, days_old, now=self.clock())
        if deleted and self.aggregator is not None:
            self.aggregator.clear_cache()
        log_event(self.logger, logging.INFO, "cleanup_completed", days_old=days_old, deleted=deleted)
        return deleted

    def get_database_stats(self) -> dict[str, Any]:
        stats = storage.get_article_stats(self.conn)
        log_event(
            self.logger,
            logging.DEBUG,
            "database_stats",
            total_news=stats["totalNews"],
            total_sources=stats["totalSources"],
        )
        return stats


async def run_worker(config: Config, interval_minutes: int | None, once: bool, logger: logging.Logger) -> int:
    conn = connect_db(config.paths.state_db)
    fetcher = Fetcher(config, logger)
    scheduler = SyncScheduler(conn, fetcher, config, logger)
    try:
        if once:
            result = await scheduler.sync_news(force=True)
            return 0 if result.success else 1

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(signum, stop_event.set)
        scheduler.start_periodic_sync(interval_minutes)
        await stop_event.wait()
        log_event(logger, logging.INFO, "worker_shutdown")
        return 0
    finally:
        await scheduler.stop()
        await fetcher.close()
        conn.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="newsdesk-worker")
    parser.add_argument("--config", help="Path to config.yml")
    parser.add_argument("--interval", type=int, default=None, help="Minutes between syncs")
    parser.add_argument("--once", action="store_true", help="Run a single forced sync and exit")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = configure_logging("newsdesk.worker")
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1
    return asyncio.run(run_worker(config, args.interval, args.once, logger))


if __name__ == "__main__":
    raise SystemExit(main())
