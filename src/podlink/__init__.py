"""
podlink - resilient client for remote terminal sessions.

- connection: reconnecting, heartbeat-tracked session connection
- offline:    durable queue for input typed while disconnected
- client:     wiring of the two for a terminal front end
"""

__version__ = "0.1.0"
