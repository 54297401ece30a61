"""Per-run log context."""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

import structlog


def new_run_id() -> str:
    return uuid.uuid4().hex[:8]


@contextmanager
def run_context(run_id: str, hour: datetime) -> Iterator[None]:
    """Tag every record logged inside the block with the run id and hour.

    Bound through contextvars, so concurrent runs in other tasks keep
    their own values.
    """
    with structlog.contextvars.bound_contextvars(run_id=run_id, hour=hour.isoformat()):
        yield
