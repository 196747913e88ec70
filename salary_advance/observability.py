"""
Execution tracing for service operations and store calls.

Every submission, decision and report runs inside a trace_span so that a
slow or failing store call can be told apart from slow business logic in
the logs.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

logger = logging.getLogger("salary_advance.trace")


@contextmanager
def trace_span(name: str, **metadata):
    """
    Log the duration of an operation as a structured key=value line.

    Example log:
    [TRACE] submit_request duration_ms=3.18 outcome=accepted requester=1

    The span logs even when the block raises, and never suppresses the
    exception. Fields added to the yielded dict inside the block are
    logged alongside the ones passed in.
    """
    start = time.perf_counter()
    fields = dict(metadata)
    try:
        yield fields
    except Exception:
        fields.setdefault("outcome", "error")
        raise
    finally:
        duration_ms = (time.perf_counter() - start) * 1000

        meta = " ".join(f"{k}={v}" for k, v in sorted(fields.items()))
        logger.info("[TRACE] %s duration_ms=%.2f %s", name, duration_ms, meta)
