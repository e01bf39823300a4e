"""Control-message codec for the WebSocket protocol.

Text frames that parse as one of the tagged JSON shapes below are
control messages; everything else is terminal input::

    {"type": "init", "shell_type": "zsh", "shell_args": [], "cwd": "~", "env": {}}
    {"type": "resize", "cols": 120, "rows": 40}
    {"type": "env", "cwd": "/tmp", "env": {"FOO": "bar"}}
"""

from __future__ import annotations

from pydantic import TypeAdapter, ValidationError

from ptyrelay.domain.models import Command, InitCommand

_COMMAND_ADAPTER: TypeAdapter[Command] = TypeAdapter(Command)


def parse_command(text: str | bytes) -> Command | None:
    """Return the control message in ``text``, or None if it is not one.

    Malformed JSON, a missing or unknown ``type`` and ill-typed fields
    all count as "not a control message".
    """
    try:
        return _COMMAND_ADAPTER.validate_json(text)
    except ValidationError:
        return None


def parse_init(text: str | bytes) -> InitCommand | None:
    """Parse the first message of a connection; only ``init`` counts."""
    command = parse_command(text)
    return command if isinstance(command, InitCommand) else None
