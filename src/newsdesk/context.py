from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .aggregator import Aggregator, Clock
from .analyzer import Analyzer
from .config import Config
from .db import DBConn, connect_db
from .ingest import Fetcher
from .pipelines.summarize_llm import ExternalSummarizer
from .worker import SyncScheduler


@dataclass
class AppContext:
    config: Config
    conn: DBConn
    fetcher: Any
    aggregator: Aggregator
    analyzer: Analyzer
    scheduler: SyncScheduler
    logger: logging.Logger

    async def close(self) -> None:
        await self.scheduler.stop()
        close = getattr(self.fetcher, "close", None)
        if close is not None:
            await close()
        self.conn.close()


def build_context(
    config: Config,
    *,
    conn: DBConn | None = None,
    fetcher: Any = None,
    summarizer: ExternalSummarizer | None = None,
    clock: Clock | None = None,
    logger: logging.Logger | None = None,
) -> AppContext:
    logger = logger or logging.getLogger("newsdesk")
    conn = conn or connect_db(config.paths.state_db)
    fetcher = fetcher or Fetcher(config, logging.getLogger("newsdesk.ingest"))
    aggregator = Aggregator(
        conn, fetcher, config, logging.getLogger("newsdesk.aggregator"), clock=clock
    )
    analyzer = Analyzer(
        conn,
        aggregator,
        summarizer or ExternalSummarizer(config, logging.getLogger("newsdesk.llm")),
        logging.getLogger("newsdesk.analyzer"),
    )
    scheduler = SyncScheduler(
        conn,
        fetcher,
        config,
        logging.getLogger("newsdesk.worker"),
        aggregator=aggregator,
        clock=clock,
    )
    return AppContext(
        config=config,
        conn=conn,
        fetcher=fetcher,
        aggregator=aggregator,
        analyzer=analyzer,
        scheduler=scheduler,
        logger=logger,
    )
