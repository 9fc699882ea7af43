"""Exceptions raised while resolving a run or validating its actions."""
from __future__ import annotations

from typing import Iterable, Sequence


class BuildfrontError(Exception):
    """Base exception for fatal errors reported before any command runs."""


class ConfigError(BuildfrontError):
    """Raised when the run configuration cannot be resolved."""


class InvalidBuildType(ConfigError):
    def __init__(self, value: str, allowed: Iterable[str]) -> None:
        self.value = value
        self.allowed = tuple(allowed)
        super().__init__(f"Unknown build type '{value}'. Expected one of: {'|'.join(self.allowed)}")


class InvalidToolchain(ConfigError):
    def __init__(self, value: str, allowed: Iterable[str]) -> None:
        self.value = value
        self.allowed = tuple(allowed)
        super().__init__(f"Unknown toolchain '{value}'. Expected one of: {'|'.join(self.allowed)}")


class UnknownHostOS(ConfigError):
    def __init__(self, os_name: str) -> None:
        self.os_name = os_name
        super().__init__(
            f"Cannot infer a toolchain for host OS '{os_name or '<unknown>'}'; pass --toolchain explicitly"
        )


class ConfigFileError(ConfigError):
    """Raised when a project defaults file is malformed."""

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        super().__init__(f"[{path}] {message}" if path else message)


class UnknownAction(BuildfrontError):
    def __init__(self, names: Sequence[str], allowed: Iterable[str]) -> None:
        self.names = tuple(names)
        self.allowed = tuple(allowed)
        quoted = ", ".join(f"'{name}'" for name in self.names)
        super().__init__(f"Unknown build command(s): {quoted}. Possible actions: {', '.join(self.allowed)}")


__all__ = [
    "BuildfrontError",
    "ConfigError",
    "ConfigFileError",
    "InvalidBuildType",
    "InvalidToolchain",
    "UnknownAction",
    "UnknownHostOS",
]
