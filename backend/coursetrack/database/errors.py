"""Translate driver-level connectivity failures into domain errors."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import InterfaceError, OperationalError, TimeoutError as PoolTimeoutError

from coursetrack.exceptions import TransientStoreError


logger = logging.getLogger(__name__)


@contextmanager
def translate_store_errors(operation: str) -> Iterator[None]:
    """Re-raise connection/pool failures as ``TransientStoreError``.

    Integrity and programming errors pass through untouched; they are bugs,
    not outages.
    """
    try:
        yield
    except (OperationalError, InterfaceError, PoolTimeoutError) as e:
        logger.warning(f"Store failure during {operation}: {type(e).__name__}: {e}")
        raise TransientStoreError(operation) from e
