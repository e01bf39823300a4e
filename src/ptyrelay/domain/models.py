"""Core domain models for the ptyrelay system.

These models represent the data flowing through a connection: the
control messages a client sends, the shell descriptor they resolve to,
and the concrete command line that ends up being spawned on the PTY.
"""

from __future__ import annotations

import enum
import os
import sys
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class HostPlatform(str, enum.Enum):
    """Operating-system family that decides how shells are resolved."""

    WINDOWS = "windows"
    POSIX = "posix"

    @classmethod
    def current(cls) -> HostPlatform:
        return cls.WINDOWS if sys.platform == "win32" or os.name == "nt" else cls.POSIX


class ShellKind(str, enum.Enum):
    """Logical shell identifiers understood by the resolver."""

    CMD = "cmd"
    POWERSHELL = "powershell"
    WSL = "wsl"
    GITBASH = "gitbash"
    BASH = "bash"
    ZSH = "zsh"
    CUSTOM = "custom"
    DEFAULT = "default"


class ConnectionState(str, enum.Enum):
    """Lifecycle of a single client connection."""

    AWAIT_INIT = "await_init"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


class RelayOutcome(str, enum.Enum):
    """Why the output relay stopped."""

    END_OF_STREAM = "end_of_stream"
    READ_ERROR = "read_error"
    SEND_ERROR = "send_error"


# ---------------------------------------------------------------------------
# Control messages (discriminated union on ``type``)
# ---------------------------------------------------------------------------


class InitCommand(BaseModel):
    """Shell selection sent as the first message of a connection."""

    model_config = ConfigDict(frozen=True, strict=True)

    type: Literal["init"] = "init"
    shell_type: str | None = Field(default=None, description="Logical shell identifier")
    shell_args: list[str] | None = Field(default=None, description="Extra shell arguments")
    cwd: str | None = Field(default=None, description="Working directory for the shell")
    env: dict[str, str] | None = Field(default=None, description="Environment overlay")


class ResizeCommand(BaseModel):
    """New terminal dimensions."""

    model_config = ConfigDict(frozen=True, strict=True)

    type: Literal["resize"] = "resize"
    cols: int = Field(ge=0, le=65535)
    rows: int = Field(ge=0, le=65535)


class EnvCommand(BaseModel):
    """Environment / working-directory change.

    Accepted for protocol compatibility only: both are applied at spawn
    time and a running shell is left untouched.
    """

    model_config = ConfigDict(frozen=True, strict=True)

    type: Literal["env"] = "env"
    cwd: str | None = Field(default=None)
    env: dict[str, str] | None = Field(default=None)


Command = Annotated[
    Union[InitCommand, ResizeCommand, EnvCommand],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Shell models
# ---------------------------------------------------------------------------


class ShellDescriptor(BaseModel):
    """Everything needed to resolve and spawn the shell for a session."""

    model_config = ConfigDict(frozen=True)

    shell_type: str | None = None
    shell_args: list[str] = Field(default_factory=list)
    cwd: str | None = None
    env: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_init(cls, command: InitCommand) -> ShellDescriptor:
        return cls(
            shell_type=command.shell_type,
            shell_args=list(command.shell_args or []),
            cwd=command.cwd,
            env=dict(command.env or {}),
        )


class ShellCommand(BaseModel):
    """A resolved executable plus its base arguments."""

    model_config = ConfigDict(frozen=True)

    executable: str
    args: tuple[str, ...] = ()

    def argv(self, extra: list[str] | tuple[str, ...] = ()) -> list[str]:
        return [self.executable, *self.args, *extra]
