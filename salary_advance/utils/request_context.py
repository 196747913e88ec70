"""
Request-scoped identity context.

The HTTP layer authenticates the caller and binds who they are for the
duration of one request; service operations read it back to decide whether
the caller may submit, decide, cancel or report. The engine trusts this
context and never authenticates anyone itself.

Context variables are used rather than thread-locals because concurrent
requests share the event loop thread.
"""

from __future__ import annotations

from contextvars import ContextVar

from salary_advance.models import Role

_requester_id: ContextVar[int | None] = ContextVar("requester_id", default=None)
_role: ContextVar[Role | None] = ContextVar("role", default=None)


def set_request_context(requester_id: int | None, role: Role | str | None) -> None:
    """Bind the caller's identity for the current request."""
    _requester_id.set(requester_id)
    _role.set(Role(role) if role else None)


def current_requester_id() -> int | None:
    """Return the requester bound to this request."""
    return _requester_id.get()


def current_role() -> Role | None:
    """Return the role bound to this request."""
    return _role.get()


def clear_request_context() -> None:
    """Clean up request context after response."""
    _requester_id.set(None)
    _role.set(None)
