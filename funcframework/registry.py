"""Registry of user functions and the paths or names they are served under."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable


class RegistrationError(ValueError):
    """Raised when a function cannot be registered."""


@dataclass
class RegisteredFunction:
    """A function held by the registry, with exactly one kind of handler set."""

    name: str = ""
    path: str = ""
    cloud_event_fn: Callable[..., Any] | None = None
    http_fn: Callable[..., Any] | None = None
    event_fn: Callable[..., Any] | None = None
    typed_fn: Callable[..., Any] | None = None


@dataclass
class Registry:
    """Functions registered by name (declaratively) or by path only."""

    _functions: dict[str, RegisteredFunction] = field(default_factory=dict, init=False)
    _functions_without_names: list[RegisteredFunction] = field(default_factory=list, init=False)

    def __init__(self) -> None:
        self._functions = {}
        self._functions_without_names = []

    def reset(self) -> None:
        """Forget every registered function."""
        self._functions = {}
        self._functions_without_names = []

    def register_http(self, fn, *, name: str = "", path: str = "") -> RegisteredFunction:
        """Register an HTTP function."""
        return self._register(RegisteredFunction(http_fn=fn), name, path)

    def register_cloud_event(self, fn, *, name: str = "", path: str = "") -> RegisteredFunction:
        """Register a CloudEvent function."""
        return self._register(RegisteredFunction(cloud_event_fn=fn), name, path)

    def register_event(self, fn, *, name: str = "", path: str = "") -> RegisteredFunction:
        """Register a background event function."""
        return self._register(RegisteredFunction(event_fn=fn), name, path)

    def register_typed(self, fn, *, name: str = "", path: str = "") -> RegisteredFunction:
        """Register a typed function."""
        return self._register(RegisteredFunction(typed_fn=fn), name, path)

    def _register(self, function: RegisteredFunction, name: str, path: str) -> RegisteredFunction:
        function.name = name
        function.path = path
        if not name and not path:
            raise RegistrationError("either the function path or the function name should be specified")
        if not name:
            self._functions_without_names.append(function)
            return function
        if name in self._functions:
            raise RegistrationError(f'function name already registered: "{name}"')
        if not path:
            function.path = "/" + name
        self._functions[name] = function
        return function

    def get_registered_function(self, name: str) -> RegisteredFunction | None:
        """Return the function registered under ``name``, or ``None``."""
        return self._functions.get(name)

    def get_all_functions(self) -> list[RegisteredFunction]:
        """Return unnamed functions followed by named ones."""
        return [*self._functions_without_names, *self._functions.values()]

    def get_last_function_without_name(self) -> RegisteredFunction | None:
        """Return the most recent function registered without a name."""
        if not self._functions_without_names:
            return None
        return self._functions_without_names[-1]


_DEFAULT = Registry()


def default_registry() -> Registry:
    """Return the process-wide registry."""
    return _DEFAULT