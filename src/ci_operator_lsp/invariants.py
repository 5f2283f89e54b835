"""Invariant markers for contracts the caller is responsible for."""

from __future__ import annotations

from typing import NoReturn, TypeVar

from ci_operator_lsp.exceptions import NeverThrown

T = TypeVar("T")


def never(reason: str = "", **env: object) -> NoReturn:
    """Mark a code path as unreachable for well-behaved callers.

    The keyword arguments are context only; they travel on the raised
    exception so the server can log them next to the failing request.
    """
    raise NeverThrown(reason or "never() marker reached", env=env)


def require_not_none(value: T | None, *, reason: str = "", **env: object) -> T:
    if value is None:
        never(reason or "required value is None", **env)
    return value
