import json
import logging
import sys
from typing import Dict, Any

logger = logging.getLogger("erc20_toolkit")


def canonical_json(data: Dict[str, Any]) -> str:
    """
    RFC8785-ish: sort_keys + no whitespace. Values json cannot encode are stringified.
    """
    return json.dumps(data, separators=(",", ":"), sort_keys=True, ensure_ascii=False, default=str)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return canonical_json(payload)


def setup_logging(level: str = "WARNING", json_output: bool = False) -> None:
    """Attach a single stderr handler to the package logger.

    Report lines are printed to stdout by the commands themselves; the logger
    only carries diagnostics, so it writes to stderr to keep stdout clean for
    ``--json`` output.
    """
    logger.handlers.clear()
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))
    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
