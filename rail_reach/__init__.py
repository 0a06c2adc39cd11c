"""Multi-day rail reachability graph scraper"""

__version__ = "0.1.0"
