"""WebSocket terminal endpoint for ptyrelay.

Accepts WebSocket connections, spawns one shell per connection on a
pseudo-terminal and relays bytes between the two, with a small JSON
control protocol for shell selection and resizing.
"""
