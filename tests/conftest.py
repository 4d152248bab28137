"""Shared fixtures: an in-memory stand-in for pyserial ports."""

import asyncio

import pytest
import serial


class FakeSerial:
    """Mimics the slice of serial.Serial the relay uses."""

    def __init__(self, devices, path, baud):
        self.devices = devices
        self.port = path
        self.baudrate = baud
        self.is_open = False
        self.error = None
        self._buffer = bytearray()

    def open(self):
        reason = self.devices.fail_open.get(self.port)
        if reason:
            raise serial.SerialException(reason)
        self.is_open = True
        self.devices.open_count += 1
        self.devices.max_open = max(self.devices.max_open, self.devices.open_count)
        self.devices.log.append(("open", self.port))

    def close(self):
        self.devices.log.append(("close", self.port))
        reason = self.devices.fail_close.get(self.port)
        if reason:
            raise serial.SerialException(reason)
        if self.is_open:
            self.is_open = False
            self.devices.open_count -= 1

    @property
    def in_waiting(self):
        if self.error is not None:
            raise self.error
        return len(self._buffer)

    def read(self, n):
        data = bytes(self._buffer[:n])
        del self._buffer[:n]
        return data

    def push(self, data: bytes):
        self._buffer.extend(data)


class FakeDevices:
    """serial_factory replacement that remembers every port it built."""

    def __init__(self):
        self.ports = {}
        self.log = []
        self.fail_open = {}
        self.fail_close = {}
        self.open_count = 0
        self.max_open = 0

    def __call__(self, path, baud):
        port = FakeSerial(self, path, baud)
        self.ports.setdefault(path, []).append(port)
        return port

    def latest(self, path) -> FakeSerial:
        return self.ports[path][-1]


class RecordingStream:
    def __init__(self):
        self.frames = []
        self.closed = False

    def write(self, frame):
        self.frames.append(frame)

    def close(self):
        self.closed = True


class BrokenStream:
    def __init__(self):
        self.attempts = 0
        self.closed = False

    def close(self):
        self.closed = True

    def write(self, frame):
        self.attempts += 1
        raise BrokenPipeError("client went away")


def pulse_lines(*values) -> bytes:
    return b"".join(b"Pulse Width: %d\r\n" % v for v in values)


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def devices():
    return FakeDevices()
