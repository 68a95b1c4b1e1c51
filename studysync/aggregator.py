"""Run every source of a family concurrently and merge the results."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Hashable, Sequence
from typing import Any, Optional

from studysync.dedup import deduplicate

logger = logging.getLogger(__name__)

# (source name, sources finished so far, total sources)
SourceDoneCallback = Callable[[str, int, int], None]


class Aggregator:
    """Tolerant join over a family's sources.

    A failing source contributes nothing and does not stop the others.
    With no configured source at all the *demo* dataset is returned, so a
    fresh deployment never shows an empty calendar. Configured sources that
    all fail yield an empty list, not demo data.

    *sources* is called once per run and returns fresh adapter instances
    (an adapter closes its HTTP client after scraping).
    """

    def __init__(
        self,
        sources: Callable[[], Sequence[Any]],
        demo: Callable[[], list],
        key: Callable[[Any], Hashable],
    ) -> None:
        self.sources = sources
        self.demo = demo
        self.key = key

    async def run(self, on_source_done: Optional[SourceDoneCallback] = None) -> list:
        sources = list(self.sources())
        if not sources:
            logger.info("No source configured, using demo data.")
            return self.demo()

        total = len(sources)
        finished = 0

        async def run_one(source) -> list:
            nonlocal finished
            try:
                records = await source.scrape()
            except Exception:
                logger.exception("%s: source raised, ignoring its records", getattr(source, "name", source))
                records = []
            finished += 1
            logger.info("%s: %d record(s)", getattr(source, "name", source), len(records))
            if on_source_done is not None:
                on_source_done(getattr(source, "name", str(source)), finished, total)
            return records

        results = await asyncio.gather(*(run_one(s) for s in sources))
        merged = [record for batch in results for record in batch]
        records, _removed = deduplicate(merged, self.key)
        logger.info("Aggregated %d record(s) from %d source(s)", len(records), total)
        return records
