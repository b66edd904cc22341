"""
Logging configuration for the console application.

Usage:
    from onchain_arbitrage_detector.utils import logging_config
    logging_config.setup()
"""
import logging
import sys


def setup(level=logging.INFO):
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(
        fmt="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s", datefmt="%H:%M:%S"))
    root.addHandler(console)

    # transport chatter
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("onchain_arbitrage_detector").setLevel(level)
