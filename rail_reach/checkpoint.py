"""
Persisted graph and progress documents, so an interrupted crawl can resume
"""

import asyncio
import json
import logging
import os
import time
from typing import Tuple

from .config import SCRAPER_CONFIG
from .graph import Graph, GraphInvariantError
from .models import Progress
from .utils import load_json_file, write_compressed_text, write_text_file

logger = logging.getLogger(__name__)

GRAPH_JSON = 'graph.json'
PROGRESS_JSON = 'progress.json'


class CheckpointStore:
    def __init__(
        self,
        output_dir: str = SCRAPER_CONFIG['output_dir'],
        compress_history: bool = SCRAPER_CONFIG['compress_history'],
    ):
        self.output_dir = output_dir
        self.compress_history = compress_history
        self._last_timestamp = 0

    @property
    def graph_path(self) -> str:
        return os.path.join(self.output_dir, GRAPH_JSON)

    @property
    def progress_path(self) -> str:
        return os.path.join(self.output_dir, PROGRESS_JSON)

    def _load_graph(self) -> Graph:
        data = load_json_file(self.graph_path)
        try:
            return Graph.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError, GraphInvariantError) as e:
            logger.warning("Could not load graph from %s: %s", self.graph_path, e)
            return Graph()

    def _load_progress(self) -> Progress:
        data = load_json_file(self.progress_path)
        try:
            return Progress.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Could not load progress from %s: %s", self.progress_path, e)
            return Progress()

    async def load(self) -> Tuple[Graph, Progress]:
        """Last saved graph and progress; empty ones for anything missing or unreadable"""
        graph = await asyncio.to_thread(self._load_graph)
        progress = await asyncio.to_thread(self._load_progress)
        logger.info(
            "Loaded %d stations, %d connections and progress for %d days",
            len(graph.nodes), len(graph.edges), len(progress.days),
        )
        return graph, progress

    def history_path(self, path: str, timestamp: int) -> str:
        history = f"{path}-{timestamp}"
        return f"{history}.gz" if self.compress_history else history

    def _write(self, graph_text: str, progress_text: str):
        # Strictly increasing, so two saves in the same millisecond keep separate history copies
        timestamp = max(int(time.time() * 1000), self._last_timestamp + 1)
        self._last_timestamp = timestamp
        write_history = write_compressed_text if self.compress_history else write_text_file

        write_history(graph_text, self.history_path(self.graph_path, timestamp))
        write_history(progress_text, self.history_path(self.progress_path, timestamp))

        write_text_file(graph_text, self.graph_path)
        write_text_file(progress_text, self.progress_path)

    async def persist(self, graph: Graph, progress: Progress):
        """Write both documents; each is fully serialized before anything touches disk"""
        logger.info("Saving progress information")

        graph_text = json.dumps(graph.to_dict(), ensure_ascii=False, separators=(',', ':'))
        progress_text = json.dumps(progress.to_dict(), ensure_ascii=False, separators=(',', ':'))

        await asyncio.to_thread(self._write, graph_text, progress_text)

        logger.info("Saved %d stations, %d connections", len(graph.nodes), len(graph.edges))
