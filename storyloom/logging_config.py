"""
Logging setup for hosts and the storyloom CLI.

The engine itself never configures logging; each module just does

    import logging
    logger = logging.getLogger(__name__)

and a host either calls setup_logging() or wires its own handlers.
Output goes to stderr so CLI tables on stdout stay clean.

What lands at each level:
  DEBUG   – relevance scores, token counts, detection factors
  INFO    – pipeline transitions, fact conflict resolutions (audit trail)
  WARNING – template fallbacks, external service errors, truncation
  ERROR   – unexpected failures in background work
"""

import logging
import sys

LOG_FORMAT = "%(levelname)-7s [%(name)s] %(message)s"

# SDK and transport chatter drowns out pipeline transitions at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "google_genai")


def parse_level_overrides(spec: str) -> dict[str, int]:
    """Parse "storyloom.lore=DEBUG,storyloom.decisions=WARNING" into levels.

    Unknown level names and entries without '=' are skipped.
    """
    overrides: dict[str, int] = {}
    for entry in (spec or "").split(","):
        name, sep, level = entry.partition("=")
        name, level = name.strip(), level.strip().upper()
        if not sep or not name:
            continue
        value = logging.getLevelName(level)
        if isinstance(value, int):
            overrides[name] = value
    return overrides


def setup_logging(level: str = "INFO", overrides: str = "") -> None:
    """Configure the root logger, then apply per-logger overrides."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    for name, value in parse_level_overrides(overrides).items():
        logging.getLogger(name).setLevel(value)
