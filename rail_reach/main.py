#!/usr/bin/env python3
"""
Rail Reachability Scraper
Crawls departure boards station by station to build a multi-day reachability graph
"""

import asyncio
import logging
import os
import sys
from datetime import date, datetime, time as dtime, timedelta
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

import click
from tqdm.asyncio import tqdm

from .checkpoint import CheckpointStore
from .config import SCRAPER_CONFIG
from .departures import DeparturesProvider, HafasRestProvider
from .graph import Graph
from .models import Progress, Station
from .reachability import stream_reachable_stations
from .stations import CountryLookup, stream_processed_stations
from .utils import configure_logging, iterable_to_list, save_json_file, to_async

logger = logging.getLogger(__name__)


class RailReachabilityScraper:
    """Drives the day-by-day crawl and owns the graph, the progress and the checkpoints"""

    def __init__(
        self,
        provider: DeparturesProvider,
        store: CheckpointStore,
        countries: Optional[CountryLookup] = None,
        days: int = SCRAPER_CONFIG['days'],
        start_date: Optional[date] = None,
        timezone: str = SCRAPER_CONFIG['timezone'],
        concurrency: int = SCRAPER_CONFIG['concurrency'],
        batch_size: int = SCRAPER_CONFIG['batch_size'],
        show_progress: bool = SCRAPER_CONFIG['show_progress'],
    ):
        self.provider = provider
        self.store = store
        self.countries = countries or CountryLookup()
        self.days = days
        self.start_date = start_date
        self.timezone = ZoneInfo(timezone)
        self.concurrency = concurrency
        self.batch_size = max(1, batch_size)
        self.show_progress = show_progress
        self.graph = Graph()
        self.progress = Progress()
        self.stations: List[Station] = []
        self.results_seen = 0

    async def load_existing_data(self):
        """Load the last checkpoint so completed (day, station) pairs are not fetched again"""
        logger.info("Loading downloaded data")
        self.graph, self.progress = await self.store.load()

        if self.start_date is None and self.progress.start_date:
            self.start_date = date.fromisoformat(self.progress.start_date)
        if self.start_date is None:
            self.start_date = date.today()
        if self.progress.start_date and self.progress.start_date != self.start_date.isoformat():
            logger.warning(
                "Start date changed from %s to %s; day indices of the saved progress now refer to other dates",
                self.progress.start_date, self.start_date,
            )
        self.progress.start_date = self.start_date.isoformat()

    def set_stations(self, stations: List[Station]):
        """Use the feed stations plus every station already known to the graph"""
        known = {station.id for station in stations}
        self.stations = list(stations)
        logger.info("%d stations loaded", len(self.stations))

        for node in self.graph.nodes.values():
            if node.id not in known:
                self.stations.append(node)
                known.add(node.id)

        logger.info("%d stations after graph add", len(self.stations))
        self.countries.seed(self.stations)

    def day_start(self, day: int) -> datetime:
        return datetime.combine(self.start_date + timedelta(days=day), dtime(0, 0), tzinfo=self.timezone)

    async def process_day(self, day: int):
        unprocessed = [s for s in self.stations if not self.progress.is_done(day, s.id)]
        logger.info(
            "Processing day %d/%d, remaining stations %d", day, self.days, len(unprocessed)
        )

        results = stream_reachable_stations(
            to_async(unprocessed),
            day,
            self.day_start(day),
            self.provider,
            self.countries,
            parallel=self.concurrency,
        )

        with tqdm(
            total=len(unprocessed),
            desc=f"Day {day} ({self.day_start(day).strftime('%m-%d')})",
            unit="station",
            disable=not self.show_progress,
        ) as pbar:
            try:
                async for item in results:
                    if item.reachables is not None:
                        self.graph.update(item)
                        self.progress.mark_done(day, item.station.id)

                    self.results_seen += 1
                    pbar.update(1)

                    if self.results_seen % self.batch_size == 0:
                        await self.save_partial_data()
            finally:
                # Stop in-flight fetches before the caller closes the provider
                await results.aclose()

        logger.info(
            "Day %d finished: %d/%d stations done",
            day, self.progress.done_count(day), len(self.stations),
        )

    async def scrape(self):
        for day in range(self.days):
            await self.process_day(day)

    async def save_partial_data(self):
        """Save partial data to avoid losing progress"""
        await self.store.persist(self.graph, self.progress)

    async def save_final_data(self):
        """Save final graph and progress plus a run summary"""
        logger.info("Saving final data...")
        await self.store.persist(self.graph, self.progress)

        summary = self.summary()
        save_json_file(summary, os.path.join(self.store.output_dir, 'scraping_summary.json'))
        logger.info("Scraping summary: %s", summary)

    def summary(self) -> Dict:
        return {
            'scraping_date': datetime.now().isoformat(),
            'start_date': self.progress.start_date,
            'days': self.days,
            'stations_total': len(self.stations),
            'stations_processed': {
                str(day): self.progress.done_count(day) for day in range(self.days)
            },
            **self.graph.statistics(),
        }

    async def run(self, stations_source: str):
        await self.load_existing_data()
        logger.info("Loading stations")
        self.set_stations(await iterable_to_list(stream_processed_stations(stations_source)))
        await self.scrape()
        logger.info("All days processed")
        await self.save_final_data()


async def run_scraper(
    days, start_date, concurrency, batch_size, output_dir, stations_source,
    only_local_lines, disable_cache,
):
    """Main async function to run the scraper"""
    provider = HafasRestProvider(only_local_lines=only_local_lines, disable_cache=disable_cache)
    scraper = RailReachabilityScraper(
        provider=provider,
        store=CheckpointStore(output_dir=output_dir),
        days=days,
        start_date=start_date,
        concurrency=concurrency,
        batch_size=batch_size,
    )

    try:
        await scraper.run(stations_source)
        logger.info("Scraping completed successfully!")
    finally:
        # Always close the session
        await provider.close()


@click.command()
@click.option('--days', default=SCRAPER_CONFIG['days'], show_default=True, type=click.IntRange(min=1),
              help='Number of days to crawl')
@click.option('--start-date', type=click.DateTime(formats=['%Y-%m-%d']), default=SCRAPER_CONFIG['start_date'],
              help='First day of the window (defaults to the saved one, then today)')
@click.option('--concurrency', default=SCRAPER_CONFIG['concurrency'], show_default=True,
              type=click.IntRange(min=1), help='Parallel departure fetches')
@click.option('--batch-size', default=SCRAPER_CONFIG['batch_size'], show_default=True,
              type=click.IntRange(min=1), help='Results between checkpoints')
@click.option('--output-dir', default=SCRAPER_CONFIG['output_dir'], show_default=True,
              help='Directory for graph and progress checkpoints')
@click.option('--stations-file', default=None,
              help='Local stations CSV instead of downloading the feed')
@click.option('--only-local-lines', is_flag=True, default=SCRAPER_CONFIG['only_local_lines'],
              help='Skip long-distance products')
@click.option('--no-cache', is_flag=True, default=SCRAPER_CONFIG['disable_cache'],
              help='Do not reuse cached departure responses')
@click.option('--log-level', default=SCRAPER_CONFIG['log_level'], show_default=True,
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False))
def main(days, start_date, concurrency, batch_size, output_dir, stations_file,
         only_local_lines, no_cache, log_level):
    """Rail Reachability Scraper"""
    configure_logging(log_level)

    try:
        asyncio.run(run_scraper(
            days=days,
            start_date=start_date.date() if start_date else None,
            concurrency=concurrency,
            batch_size=batch_size,
            output_dir=output_dir,
            stations_source=stations_file or SCRAPER_CONFIG['stations_url'],
            only_local_lines=only_local_lines,
            disable_cache=no_cache,
        ))
    except KeyboardInterrupt:
        logger.warning("Interrupted; progress up to the last checkpoint is kept")
        sys.exit(130)
    except Exception:
        logger.exception("Scraping failed")
        sys.exit(1)


if __name__ == '__main__':
    main()
