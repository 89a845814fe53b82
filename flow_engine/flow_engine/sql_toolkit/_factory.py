"""Backend selection for the SQL toolkit.

Consumer code calls :func:`get_sql_toolkit` and never imports a backend.
The active backend is built lazily from the registered factory (SQLGlot
unless :func:`register_implementation` named another) and cached until the
registration changes.  :func:`use_toolkit` swaps in a ready instance for the
duration of a ``with`` block, which is how tests stub the parser.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Callable

from ._protocols import SqlToolkit

logger = logging.getLogger(__name__)

DEFAULT_BACKEND = "sqlglot"


def _sqlglot_backend() -> SqlToolkit:
    from .impl.sqlglot_impl import SqlGlotToolkit

    return SqlGlotToolkit()


class _Registry:
    """Factory plus cached instance, guarded by one lock."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.name = DEFAULT_BACKEND
        self.factory: Callable[[], SqlToolkit] = _sqlglot_backend
        self.instance: SqlToolkit | None = None

    def restore_default(self) -> None:
        self.name = DEFAULT_BACKEND
        self.factory = _sqlglot_backend
        self.instance = None


_registry = _Registry()


def register_implementation(
    factory_fn: Callable[[], SqlToolkit], name: str | None = None
) -> None:
    """Make *factory_fn* the backend; the next :func:`get_sql_toolkit` call builds it.

    *name* is only used for logging and :func:`active_backend`; it defaults
    to the factory's ``__name__``.
    """
    with _registry.lock:
        _registry.name = name or getattr(factory_fn, "__name__", "custom")
        _registry.factory = factory_fn
        _registry.instance = None
    logger.debug("SQL toolkit backend set to %s", _registry.name)


def get_sql_toolkit() -> SqlToolkit:
    """Return the active toolkit, building it on first use."""
    instance = _registry.instance
    if instance is not None:
        return instance
    with _registry.lock:
        if _registry.instance is None:
            _registry.instance = _registry.factory()
            logger.debug("Instantiated SQL toolkit backend %s", _registry.name)
        return _registry.instance


def active_backend() -> str:
    """Name of the registered backend."""
    return _registry.name


@contextmanager
def use_toolkit(toolkit: SqlToolkit, name: str = "override") -> Iterator[SqlToolkit]:
    """Serve *toolkit* from :func:`get_sql_toolkit` inside the block.

    The previous registration and cached instance are restored on exit.
    """
    with _registry.lock:
        saved = (_registry.name, _registry.factory, _registry.instance)
        _registry.name = name
        _registry.factory = lambda: toolkit
        _registry.instance = toolkit
    try:
        yield toolkit
    finally:
        with _registry.lock:
            _registry.name, _registry.factory, _registry.instance = saved


def reset_toolkit() -> None:
    """Return to the default SQLGlot backend (for tests)."""
    with _registry.lock:
        _registry.restore_default()
