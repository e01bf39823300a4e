"""Domain models for ptyrelay.

This package contains the core data structures, enumerations, and value
objects used throughout the system. All models use Pydantic v2 for
validation and serialization.
"""

from ptyrelay.domain.models import (
    Command,
    ConnectionState,
    EnvCommand,
    HostPlatform,
    InitCommand,
    ResizeCommand,
    ShellCommand,
    ShellDescriptor,
    ShellKind,
)

__all__ = [
    "Command",
    "ConnectionState",
    "EnvCommand",
    "HostPlatform",
    "InitCommand",
    "ResizeCommand",
    "ShellCommand",
    "ShellDescriptor",
    "ShellKind",
]
