"""Shell resolution: logical shell identifier -> executable + base arguments.

Identifiers are matched exactly (case-sensitive)::

    cmd, powershell, wsl, gitbash, bash, zsh, custom:<path>

Anything else, including no identifier at all, selects the platform's
default shell. Identifiers that only make sense on Windows degrade to the
default shell elsewhere instead of failing.
"""

from __future__ import annotations

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from collections.abc import Mapping

from ptyrelay.domain.models import HostPlatform, ShellCommand, ShellKind

logger = logging.getLogger(__name__)

CUSTOM_PREFIX = "custom:"

POSIX_FALLBACK_SHELL = "/bin/bash"
WINDOWS_DEFAULT_SHELL = "cmd.exe"

# Preferred first: PowerShell 7+, then the legacy Windows PowerShell
POWERSHELL_CANDIDATES = ("pwsh.exe", "powershell.exe")
POWERSHELL_FALLBACK = "powershell.exe"

PROBE_TIMEOUT = 5.0


def parse_shell_type(shell_type: str | None) -> tuple[ShellKind, str | None]:
    """Split an identifier into its kind and, for ``custom:``, the path."""
    if shell_type is None:
        return ShellKind.DEFAULT, None
    if shell_type.startswith(CUSTOM_PREFIX):
        return ShellKind.CUSTOM, shell_type[len(CUSTOM_PREFIX):]
    try:
        kind = ShellKind(shell_type)
    except ValueError:
        return ShellKind.DEFAULT, None
    # "default" and "custom" are not identifiers clients can send verbatim
    if kind in (ShellKind.DEFAULT, ShellKind.CUSTOM):
        return ShellKind.DEFAULT, None
    return kind, None


class ShellPolicy(ABC):
    """Resolution rules for one host platform."""

    def __init__(self, environ: Mapping[str, str]) -> None:
        self._environ = environ

    @abstractmethod
    def default(self) -> ShellCommand:
        ...

    def resolve(self, kind: ShellKind, custom_path: str | None = None) -> ShellCommand:
        if kind is ShellKind.CUSTOM and custom_path is not None:
            return ShellCommand(executable=custom_path)
        if kind is ShellKind.BASH:
            return ShellCommand(executable="bash")
        if kind is ShellKind.ZSH:
            return ShellCommand(executable="zsh")
        return self.resolve_native(kind)

    def resolve_native(self, kind: ShellKind) -> ShellCommand:
        """Resolve platform-specific kinds. Unknown ones get the default."""
        return self.default()


class PosixShellPolicy(ShellPolicy):
    """Linux / macOS: ``$SHELL`` or /bin/bash, no Windows shells."""

    def default(self) -> ShellCommand:
        return ShellCommand(executable=self._environ.get("SHELL") or POSIX_FALLBACK_SHELL)


class WindowsShellPolicy(ShellPolicy):
    """Windows: cmd.exe by default, plus PowerShell, WSL and Git Bash.

    Executable probing is memoized so repeated resolutions are stable.
    """

    def __init__(self, environ: Mapping[str, str]) -> None:
        super().__init__(environ)
        self._probed: dict[ShellKind, str | None] = {}

    def default(self) -> ShellCommand:
        return ShellCommand(executable=WINDOWS_DEFAULT_SHELL)

    def resolve_native(self, kind: ShellKind) -> ShellCommand:
        if kind is ShellKind.CMD:
            return ShellCommand(executable="cmd.exe")
        if kind is ShellKind.WSL:
            return ShellCommand(executable="wsl.exe")
        if kind is ShellKind.POWERSHELL:
            return ShellCommand(executable=self._probe(kind) or POWERSHELL_FALLBACK)
        if kind is ShellKind.GITBASH:
            bash_path = self._probe(kind)
            if bash_path:
                return ShellCommand(executable=bash_path, args=("--login",))
            logger.debug("Git Bash not found, falling back to default shell")
        return self.default()

    def _probe(self, kind: ShellKind) -> str | None:
        if kind not in self._probed:
            finder = find_powershell if kind is ShellKind.POWERSHELL else self._find_gitbash
            self._probed[kind] = finder()
        return self._probed[kind]

    def _find_gitbash(self) -> str | None:
        return find_gitbash(self._environ.get("USERPROFILE", ""))


def find_powershell() -> str | None:
    """Return the first PowerShell binary that actually starts."""
    for candidate in POWERSHELL_CANDIDATES:
        try:
            subprocess.run(
                [candidate, "-Command", "exit"],
                capture_output=True,
                timeout=PROBE_TIMEOUT,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("PowerShell probe %s failed: %s", candidate, e)
            continue
        return candidate
    return None


def find_gitbash(userprofile: str = "") -> str | None:
    """Look for Git for Windows' bash.exe in the usual places, then PATH."""
    known_paths = [
        "C:\\Program Files\\Git\\bin\\bash.exe",
        "C:\\Program Files (x86)\\Git\\bin\\bash.exe",
        f"{userprofile}\\AppData\\Local\\Programs\\Git\\bin\\bash.exe",
    ]
    for path in known_paths:
        if os.path.exists(path):
            return path

    try:
        result = subprocess.run(
            ["where", "bash.exe"],
            capture_output=True,
            text=True,
            timeout=PROBE_TIMEOUT,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("'where bash.exe' failed: %s", e)
        return None
    if result.returncode != 0:
        return None
    lines = result.stdout.splitlines()
    first = lines[0].strip() if lines else ""
    # WSL's System32\bash.exe shows up here too; only accept Git's
    if "Git" in first:
        return first
    return None


class ShellResolver:
    """Maps a logical shell identifier to a concrete command line.

    Example::

        resolver = ShellResolver()
        resolver.resolve("zsh")               # ShellCommand(executable="zsh")
        resolver.resolve("custom:/bin/fish")  # ShellCommand(executable="/bin/fish")
        resolver.resolve(None)                # $SHELL or /bin/bash on POSIX
    """

    def __init__(
        self,
        platform: HostPlatform | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._platform = platform or HostPlatform.current()
        env = dict(os.environ if environ is None else environ)
        if self._platform is HostPlatform.WINDOWS:
            self._policy: ShellPolicy = WindowsShellPolicy(env)
        else:
            self._policy = PosixShellPolicy(env)

    @property
    def platform(self) -> HostPlatform:
        return self._platform

    def resolve(self, shell_type: str | None) -> ShellCommand:
        kind, custom_path = parse_shell_type(shell_type)
        command = self._policy.resolve(kind, custom_path)
        logger.debug("Resolved shell %r -> %s", shell_type, command.argv())
        return command
