# logging_config.py
import json
import sys
from typing import Any, Dict

from loguru import logger

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> | "
    "<level>{message}</level>"
)


def _json_sink(message) -> None:
    record: Dict[str, Any] = message.record
    entry = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "module": record["module"],
        "function": record["function"],
    }
    if record["exception"] is not None:
        exc_type = record["exception"].type
        entry["exception"] = exc_type.__name__ if exc_type else None
    entry.update(record["extra"])
    sys.stderr.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """
    Replace loguru's default handler with one stderr sink.
    json_format=True emits one JSON object per line (for the hosting platform's log drain).
    """
    logger.remove()
    if json_format:
        logger.add(_json_sink, level=level.upper())
    else:
        logger.add(sys.stderr, format=TEXT_FORMAT, level=level.upper(), colorize=True)
