"""Serial port enumeration."""

import logging
from typing import List

import serial.tools.list_ports

from serial2sse.errors import ScanFailure

logger = logging.getLogger("serial2sse.ports")


def list_port_paths() -> List[str]:
    """Return the device paths of the serial ports present, sorted by name."""
    try:
        ports = serial.tools.list_ports.comports()
    except Exception as e:
        logger.error("Port scan failed: %s", e)
        raise ScanFailure(str(e)) from e
    return sorted(port.device for port in ports)
