"""Toolchain definitions and registry utilities."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Tuple


def _cmake_definition(key: str, value: Any) -> str:
    if isinstance(value, bool):
        value = "ON" if value else "OFF"
    return f"-D{key}={value}"


@dataclass(frozen=True, slots=True)
class ToolchainDefinition:
    """A compiler/linker combination and the CMake switches that select it.

    ``cross_environment`` names environment variables that are substituted
    verbatim into ``-D<NAME>=<value>`` switches when the toolchain resolves.
    """

    name: str
    description: str
    cc: str
    cxx: str
    linker: str
    definitions: Mapping[str, Any] = field(default_factory=dict)
    toolchain_file: str | None = None
    cross_environment: Tuple[str, ...] = ()
    executable_patterns: Tuple[str, ...] = ()

    @property
    def needs_permission_fix(self) -> bool:
        return bool(self.executable_patterns)

    def missing_environment(self, env: Mapping[str, str]) -> List[str]:
        return [name for name in self.cross_environment if not env.get(name)]

    def cmake_arguments(self, *, project_dir: Path, env: Mapping[str, str]) -> Tuple[str, ...]:
        args: List[str] = [
            _cmake_definition("CMAKE_C_COMPILER", self.cc),
            _cmake_definition("CMAKE_CXX_COMPILER", self.cxx),
            _cmake_definition("CMAKE_LINKER", self.linker),
        ]
        for key, value in self.definitions.items():
            args.append(_cmake_definition(key, value))
        if self.toolchain_file:
            args.append(_cmake_definition("CMAKE_TOOLCHAIN_FILE", (project_dir / self.toolchain_file).as_posix()))
        for name in self.cross_environment:
            args.append(_cmake_definition(name, env.get(name, "")))
        return tuple(args)


# Windows SDK layout consumed by LLVM's WinMsvc.cmake cross toolchain file.
WSL_CROSS_ENVIRONMENT: Tuple[str, ...] = (
    "HOST_ARCH",
    "LLVM_NATIVE_TOOLCHAIN",
    "MSVC_BASE",
    "WINSDK_BASE",
    "WINSDK_VER",
)


def _build_builtin_definitions() -> Dict[str, ToolchainDefinition]:
    builtins = [
        ToolchainDefinition(
            name="msvc",
            description="Microsoft Visual C++",
            cc="cl.exe",
            cxx="cl.exe",
            linker="link.exe",
        ),
        ToolchainDefinition(
            name="gcc",
            description="GNU Compiler Collection",
            cc="gcc",
            cxx="g++",
            linker="ld",
        ),
        ToolchainDefinition(
            name="clang",
            description="LLVM Clang toolchain",
            cc="clang",
            cxx="clang++",
            linker="ld.lld",
        ),
        ToolchainDefinition(
            name="clang_cl",
            description="LLVM clang-cl with the MSVC ABI",
            cc="clang-cl.exe",
            cxx="clang-cl.exe",
            linker="lld-link.exe",
        ),
        ToolchainDefinition(
            name="msvc_wsl",
            description="clang-cl cross build for Windows from a WSL shell",
            cc="clang-cl",
            cxx="clang-cl",
            linker="lld-link",
            toolchain_file="cmake/WinMsvc.cmake",
            cross_environment=WSL_CROSS_ENVIRONMENT,
            executable_patterns=("*.exe", "*.dll"),
        ),
    ]
    return {definition.name: definition for definition in builtins}


HostMatcher = Callable[[str], bool]

_HOST_DEFAULTS: List[Tuple[HostMatcher, str]] = [
    (lambda os_name: os_name == "windows" or os_name.startswith(("cygwin", "msys", "mingw")), "msvc"),
    (lambda os_name: os_name == "linux", "gcc"),
]


class ToolchainRegistry:
    """The fixed set of toolchains a run may select from."""

    def __init__(self, definitions: Mapping[str, ToolchainDefinition] | None = None) -> None:
        self._definitions: Dict[str, ToolchainDefinition] = dict(definitions or {})

    @classmethod
    def with_builtins(cls) -> "ToolchainRegistry":
        return cls(_build_builtin_definitions())

    def get(self, name: str) -> ToolchainDefinition | None:
        return self._definitions.get(name)

    def available(self) -> Iterable[str]:
        return self._definitions.keys()

    @staticmethod
    def default_for_host(os_name: str) -> str | None:
        normalized = os_name.strip().lower()
        for matches, toolchain in _HOST_DEFAULTS:
            if matches(normalized):
                return toolchain
        return None


BUILTIN_TOOLCHAINS = _build_builtin_definitions()

__all__ = [
    "BUILTIN_TOOLCHAINS",
    "ToolchainDefinition",
    "ToolchainRegistry",
    "WSL_CROSS_ENVIRONMENT",
]
