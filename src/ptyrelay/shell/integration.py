"""Shell integration snippets injected once into a fresh shell.

Each snippet defines ``__sw_cwd``, a hook that reports the working
directory with an OSC 7 escape (``ESC ] 7 ; file://host/path ESC \\``),
registers it with the shell's own prompt / directory-change mechanism,
runs it once and clears the screen. The leading space keeps the line out
of the shell history for bash and zsh defaults.

Windows shells get nothing; the client parses their prompt instead.
"""

from __future__ import annotations

from ptyrelay.domain.models import HostPlatform

BASH_INTEGRATION = (
    " eval '__sw_cwd(){ printf \"\\e]7;file://%s%s\\e\\\\\" \"${HOSTNAME:-localhost}\" \"$PWD\";};"
    "PROMPT_COMMAND=\"__sw_cwd${PROMPT_COMMAND:+;$PROMPT_COMMAND}\"' 2>/dev/null;"
    "__sw_cwd;printf '\\ec'\n"
)

ZSH_INTEGRATION = (
    " eval '__sw_cwd(){ printf \"\\e]7;file://%s%s\\e\\\\\" \"${HOST:-localhost}\" \"$PWD\";};"
    "autoload -Uz add-zsh-hook;add-zsh-hook precmd __sw_cwd;add-zsh-hook chpwd __sw_cwd' 2>/dev/null;"
    "__sw_cwd;printf '\\ec'\n"
)

FISH_INTEGRATION = (
    " eval 'function __sw_cwd --on-variable PWD; "
    "printf \"\\e]7;file://%s%s\\e\\\\\" (hostname) $PWD; end' 2>/dev/null;"
    "__sw_cwd;printf '\\ec'\n"
)

_SCRIPTS = {
    "bash": BASH_INTEGRATION,
    "zsh": ZSH_INTEGRATION,
    "fish": FISH_INTEGRATION,
}


def integration_script(
    shell_type: str | None, platform: HostPlatform | None = None,
) -> bytes | None:
    """Return the snippet for ``shell_type``, or None if there is none."""
    if shell_type is None:
        return None
    if (platform or HostPlatform.current()) is HostPlatform.WINDOWS:
        return None
    script = _SCRIPTS.get(shell_type)
    return script.encode() if script is not None else None
