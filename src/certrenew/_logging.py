"""Logging utilities for certrenew library."""

import logging
import time
from collections.abc import MutableMapping
from typing import Any

# Applications attach their own handlers
_root = logging.getLogger("certrenew")
_root.addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the certrenew namespace.

    Args:
        name: The module name (typically __name__).

    Returns:
        A logger instance for the module.
    """
    return logging.getLogger(name)


class RenewalLogAdapter(logging.LoggerAdapter):
    """Logger adapter binding renewal context to every record.

    Bound fields (identifier, domains, phase) are merged into the ``extra``
    of each call; fields passed explicitly at the call site win.

    Usage:
        log = RenewalLogAdapter(logger, identifier="example.com")
        log.bind(phase="obtaining")
        log.info("Obtaining certificate", extra={"attempt": 1})
    """

    def __init__(self, logger: logging.Logger | logging.LoggerAdapter, **fields: Any) -> None:
        if isinstance(logger, logging.LoggerAdapter):
            logger = logger.logger
        super().__init__(logger, dict(fields))

    def bind(self, **fields: Any) -> None:
        """Add or replace bound fields."""
        self.extra.update(fields)  # type: ignore[union-attr]

    @property
    def fields(self) -> dict[str, Any]:
        return dict(self.extra)  # type: ignore[arg-type]

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}  # type: ignore[dict-item]
        return msg, kwargs


class Timer:
    """Context manager for timing operations.

    Usage:
        with Timer() as t:
            # do work
        print(f"Elapsed: {t.elapsed_ms}ms")
    """

    def __init__(self) -> None:
        self.elapsed_ms: float = 0
        self._start: float = 0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *args: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000
