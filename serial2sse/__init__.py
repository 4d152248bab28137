"""Serial-to-SSE relay: push pulse-width samples from a serial device to live browsers."""

from serial2sse.app import create_app, run_server
from serial2sse.bridge import RelaySession
from serial2sse.broadcast import BroadcastRegistry

__all__ = ["BroadcastRegistry", "RelaySession", "create_app", "run_server"]
