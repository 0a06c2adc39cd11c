# Configuration file for the reachability scraper
import os

from dotenv import load_dotenv

load_dotenv()


def _env(key, default, cast=str):
    """Read RAIL_REACH_<KEY> from the environment, falling back to default"""
    value = os.getenv(f"RAIL_REACH_{key.upper()}")
    if value is None or value == "":
        return default
    if cast is bool:
        return value.strip().lower() in ("1", "true", "yes", "on")
    return cast(value)


SCRAPER_CONFIG = {
    "days": _env("days", 7, int),
    "start_date": _env("start_date", None),  # ISO date, day 0 of the window
    "timezone": _env("timezone", "Europe/Berlin"),
    "concurrency": _env("concurrency", 8, int),  # Parallel departure fetches
    "batch_size": _env("batch_size", 500, int),  # Results between checkpoints
    "output_dir": _env("output_dir", "data"),
    "log_level": _env("log_level", "INFO"),
    "only_local_lines": _env("only_local_lines", False, bool),
    "disable_cache": _env("disable_cache", False, bool),
    "cache_dir": _env("cache_dir", ".cache"),
    "compress_history": _env("compress_history", True, bool),
    "show_progress": _env("show_progress", True, bool),
    "stations_url": _env(
        "stations_url",
        "https://raw.githubusercontent.com/trainline-eu/stations/master/stations.csv",
    ),
}

# API Configuration
API_CONFIG = {
    "base_url": _env("base_url", "https://v6.db.transport.rest"),
    "client_name": _env("client_name", "scrapper.NAIL116.mff"),
    "timeout": _env("timeout", 30, float),
    "retry_attempts": _env("retry_attempts", 3, int),
    "retry_delay": _env("retry_delay", 5, float),
}

# Data validation rules
VALIDATION_RULES = {
    "min_connection_duration": 0,  # minutes, exclusive
    "max_connection_duration": 210,  # minutes
}
