"""Asyncio relay session: one serial device at a time, fanned out to subscribers."""

import asyncio
import logging
from typing import Callable, Optional

import serial

from serial2sse.broadcast import BroadcastRegistry
from serial2sse.errors import OpenFailure
from serial2sse.pipeline import (
    DEFAULT_BATCH_SIZE,
    LineExtractor,
    SampleBatcher,
    parse_sample,
)

logger = logging.getLogger("serial2sse.bridge")

SIMULATION_PORT = "TEST"
DEFAULT_BAUD = 115200
DEFAULT_SETTLE_DELAY = 0.5
POLL_INTERVAL = 0.01
READ_TIMEOUT = 0.1

SerialFactory = Callable[[str, int], serial.Serial]


def make_serial(path: str, baud: int) -> serial.Serial:
    """Build an unopened serial port; assigning .port afterwards keeps pyserial from opening it."""
    ser = serial.Serial(baudrate=baud, timeout=READ_TIMEOUT)
    ser.port = path
    return ser


def is_simulation(path: str) -> bool:
    """True for the sentinel port name that skips real hardware."""
    return SIMULATION_PORT in path


class DeviceConnection:
    """A serial port plus the line extractor reading from it."""

    def __init__(self, path: str, epoch: int, ser: serial.Serial):
        self.path = path
        self.epoch = epoch
        self.serial = ser
        self.extractor = LineExtractor()

    @property
    def is_open(self) -> bool:
        return bool(self.serial.is_open)

    def __repr__(self):
        state = "open" if self.is_open else "closed"
        return f"<DeviceConnection {self.path} epoch={self.epoch} {state}>"


class RelaySession:
    """Owns the active device connection and the batch in progress.

    connect() calls are serialized by a lock. Every connect bumps the epoch
    before teardown starts, and bytes tagged with an older epoch are ignored,
    so a superseded device can never contribute to a later batch.
    """

    def __init__(
        self,
        registry: BroadcastRegistry,
        baud: int = DEFAULT_BAUD,
        batch_size: int = DEFAULT_BATCH_SIZE,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        serial_factory: SerialFactory = make_serial,
    ):
        self.registry = registry
        self.baud = baud
        self.settle_delay = settle_delay
        self._serial_factory = serial_factory
        self._batcher = SampleBatcher(batch_size)
        self._lock = asyncio.Lock()
        self._epoch = 0
        self._connection: Optional[DeviceConnection] = None
        self._reader: Optional[asyncio.Task] = None

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def connection(self) -> Optional[DeviceConnection]:
        return self._connection

    @property
    def port(self) -> Optional[str]:
        return self._connection.path if self._connection else None

    @property
    def is_open(self) -> bool:
        return self._connection is not None and self._connection.is_open

    def status(self) -> dict:
        """Snapshot of the active port, epoch, pending samples and subscribers."""
        return {
            "port": self.port,
            "open": self.is_open,
            "epoch": self._epoch,
            "pending": len(self._batcher.pending),
            "subscribers": len(self.registry),
        }

    async def connect(self, path: str) -> str:
        """Switch the relay to path; return a human-readable acknowledgement.

        Raises OpenFailure if the new port cannot be opened, in which case no
        port is left open.
        """
        if is_simulation(path):
            logger.info("Simulation mode requested (%s)", path)
            return "TEST mode connected"

        async with self._lock:
            self._epoch += 1
            epoch = self._epoch
            if self._connection is not None:
                await self._teardown()
                await asyncio.sleep(self.settle_delay)

            dropped = self._batcher.reset()
            if dropped:
                logger.info("Discarded %d samples from the previous port", dropped)

            conn = DeviceConnection(path, epoch, self._serial_factory(path, self.baud))
            self._connection = conn
            try:
                await asyncio.to_thread(conn.serial.open)
            except (serial.SerialException, OSError, ValueError) as e:
                logger.error("Connection failed: %s: %s", path, e)
                raise OpenFailure(path, str(e)) from e

            self._reader = asyncio.create_task(self._read_loop(conn))
            logger.info("Connected to %s (epoch %d)", path, epoch)
            return f"{path} connected (previous connection released)"

    async def close(self) -> None:
        """Release the active port, if any, without waiting for it to settle."""
        async with self._lock:
            self._epoch += 1
            if self._connection is not None:
                await self._teardown()
            self._batcher.reset()

    async def _teardown(self) -> None:
        conn = self._connection
        reader, self._reader = self._reader, None
        if reader is not None:
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)
        if conn.is_open:
            logger.info("Closing %s", conn.path)
            try:
                await asyncio.to_thread(conn.serial.close)
            except (serial.SerialException, OSError) as e:
                logger.error("Failed to close %s: %s", conn.path, e)
        self._connection = None

    async def _read_loop(self, conn: DeviceConnection) -> None:
        """Pump bytes from conn until it fails or the task is cancelled."""
        ser = conn.serial
        try:
            while True:
                n = ser.in_waiting
                if n > 0:
                    data = await asyncio.to_thread(ser.read, n)
                    if data:
                        self.feed(conn.epoch, conn, data)
                else:
                    await asyncio.sleep(POLL_INTERVAL)
        except (serial.SerialException, OSError) as e:
            logger.error("Serial port error on %s: %s", conn.path, e)

    def feed(self, epoch: int, conn: DeviceConnection, data: bytes) -> int:
        """Run data from conn through the pipeline; return batches broadcast."""
        if epoch != self._epoch:
            logger.debug("Ignoring %d bytes from superseded %s", len(data), conn.path)
            return 0
        emitted = 0
        for line in conn.extractor.feed(data):
            sample = parse_sample(line)
            if sample is None:
                continue
            batch = self._batcher.add(sample)
            if batch is not None:
                self.registry.broadcast(batch)
                emitted += 1
        return emitted
