#!/usr/bin/env python3
"""
Utility functions for the reachability scraper
"""

import gzip
import json
import logging
import os
from typing import AsyncIterable, AsyncIterator, Dict, Iterable, List, TypeVar

T = TypeVar('T')

logger = logging.getLogger(__name__)


def configure_logging(level="INFO"):
    """Configure default logging if no handlers are present"""
    root = logging.getLogger()
    if root.handlers:
        return
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def load_json_file(filepath: str) -> Dict:
    """Load JSON data from a plain or gzip-compressed file, {} when it is unusable"""
    try:
        if filepath.endswith('.gz'):
            with gzip.open(filepath, 'rb') as f:
                return json.loads(f.read().decode('utf-8'))
        with open(filepath, 'r', encoding='utf-8') as f:
            return json.load(f)
    except FileNotFoundError:
        logger.warning("File %s not found", filepath)
        return {}
    except (OSError, ValueError) as e:
        logger.warning("Error parsing JSON from %s: %s", filepath, e)
        return {}


def save_json_file(data: Dict, filepath: str):
    """Save data to an indented JSON file"""
    write_text_file(json.dumps(data, ensure_ascii=False, indent=2), filepath)


def write_text_file(text: str, filepath: str):
    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(filepath, 'w', encoding='utf-8') as f:
        f.write(text)


def write_compressed_text(text: str, filepath: str):
    """Save text gzip-compressed"""
    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with gzip.open(filepath, 'wb') as f:
        f.write(text.encode('utf-8'))


async def iterable_to_list(items: AsyncIterable[T]) -> List[T]:
    return [item async for item in items]


async def to_async(items: Iterable[T]) -> AsyncIterator[T]:
    """Single-pass async view over a plain iterable"""
    for item in items:
        yield item
