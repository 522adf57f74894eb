"""Declarative registration of functions served when FUNCTION_TARGET names them."""

from __future__ import annotations

from typing import Any, Callable

from funcframework.registry import RegistrationError, default_registry

F = Callable[..., Any]


def _checked(register: Callable[..., Any], name: str, fn: F) -> F:
    try:
        register(fn, name=name)
    except RegistrationError as exc:
        raise RegistrationError(f"failure to register function: {exc}") from exc
    return fn


def http(name: str, fn: F) -> F:
    """Register an HTTP function under ``name``."""
    return _checked(default_registry().register_http, name, fn)


def cloud_event(name: str, fn: F) -> F:
    """Register a CloudEvent function under ``name``."""
    return _checked(default_registry().register_cloud_event, name, fn)


def typed(name: str, fn: F) -> F:
    """Register a typed function under ``name``: it takes one decoded JSON value."""
    return _checked(default_registry().register_typed, name, fn)