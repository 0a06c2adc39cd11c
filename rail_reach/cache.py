"""
On-disk memo for raw provider responses
"""

import json
import logging
import os
import re
from typing import Any, Awaitable, Callable

from .utils import load_json_file, write_text_file

logger = logging.getLogger(__name__)


def cached_fn(
    namespace: str,
    fn: Callable[..., Awaitable[Any]],
    key_fn: Callable[..., str],
    cache_dir: str = '.cache',
    disabled: bool = False,
) -> Callable[..., Awaitable[Any]]:
    """Wrap an async fn so its JSON-serializable results are reused across runs"""
    if disabled:
        return fn

    base_path = os.path.join(cache_dir, namespace)

    async def wrapper(*args):
        key = re.sub(r'[^A-Za-z0-9_.-]', '_', key_fn(*args))
        path = os.path.join(base_path, f"{key}.json")

        if os.path.exists(path):
            cached = load_json_file(path)
            if cached:
                logger.debug("Cache hit %s", path)
                return cached['value']

        result = await fn(*args)
        write_text_file(json.dumps({'value': result}, ensure_ascii=False), path)
        return result

    return wrapper
