"""Append-only log of fatal tile failures"""
import logging
import os
from datetime import datetime

logger = logging.getLogger(__name__)


class ErrorLog:
    """Appends one line per failed tile; never rotates or truncates"""

    def __init__(self, path: str = "crash.log"):
        self.path = path

    def record(self, tier: str, x: int, y: int, error: BaseException) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        timestamp = datetime.now().isoformat(timespec="seconds")
        line = f"{timestamp} Failed to fetch tile at {x}, {y} ({tier}): {error}\n"
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line)
        logger.debug("Recorded failure of %s/%s/%s in %s", tier, x, y, self.path)
