"""ptyrelay -- WebSocket bridge to a local interactive shell.

This package spawns a real shell on a pseudo-terminal for every WebSocket
connection and relays the terminal's bytes in both directions. A small
JSON control protocol lets the client pick the shell, resize the terminal
and pass spawn-time environment overrides.
"""

__version__ = "0.1.0"
