"""
Shared fixtures: a simulated STM32 SPI bootloader.

SimulatedBootloader implements the device side of the SPI bootloader
protocol, byte by byte, with full-duplex semantics: the byte returned for
an exchange is whatever the device had queued before it saw the byte the
host just sent. FakeTransport plugs it into the Transport contract and
records every byte sent, every delay and every control-line change.
"""

from collections import deque
from typing import Optional

import pytest

from stm32boot.comms.checksum import verify_frame, xor_checksum
from stm32boot.comms.frame import ACK, FILLER, NACK, SOF, SYNC_ECHO
from stm32boot.comms.transport import Transport
from stm32boot.flash.memory_map import FLASH_END, FLASH_START

DEFAULT_COMMANDS = (0x00, 0x01, 0x02, 0x11, 0x21, 0x31, 0x44, 0x63, 0x73, 0x82, 0x92)


# =============================================================================
# Simulated Device
# =============================================================================

class SimulatedBootloader:
    """
    Device side of the STM32 SPI bootloader.

    Attributes:
        flash: Flash contents, erased to 0xFF
        echo_sync: Answer SOF with the sync echo (False simulates a dead bus)
        nack_commands: Opcodes answered with NACK
        nack_write_addresses: WRITE_MEMORY addresses answered with NACK
            after the data frame
        nack_replies: Opcodes whose reply ends with NACK instead of ACK
        corrupt_reads: Map of flash offset to the byte returned instead
        go_address: Address of the last accepted GO
        echoes: Acknowledge echoes received from the host
    """

    def __init__(
        self,
        version: int = 0x11,
        product_id: int = 0x0433,
        commands: tuple[int, ...] = DEFAULT_COMMANDS,
        echo_sync: bool = True,
    ):
        self.version = version
        self.product_id = product_id
        self.commands = commands
        self.echo_sync = echo_sync
        self.nack_commands: set[int] = set()
        self.nack_write_addresses: set[int] = set()
        self.nack_replies: set[int] = set()
        self.corrupt_reads: dict[int, int] = {}

        self.flash = bytearray(b"\xFF" * (FLASH_END - FLASH_START + 1))
        self.boot0 = False
        self.in_reset = False
        self.resets = 0
        self.go_address: Optional[int] = None
        self.erase_count = 0
        self.echoes: list[int] = []

        self.tx: deque[int] = deque()
        self._rx = None

    # -------------------------------------------------------------------------
    # Wire Interface
    # -------------------------------------------------------------------------

    def clock(self, byte: int) -> int:
        """Exchange one byte: return the queued reply, then consume byte."""
        reply = self.tx.popleft() if self.tx else FILLER
        if self._rx is not None and not self.in_reset:
            try:
                self._rx.send(byte)
            except StopIteration:
                self._rx = None
        return reply

    def set_reset(self, asserted: bool) -> None:
        self.in_reset = asserted
        self.tx.clear()
        self._rx = None
        if not asserted:
            self.resets += 1
            if self.boot0:
                self._rx = self._bootloader()
                next(self._rx)

    @property
    def running(self) -> bool:
        """True while the bootloader state machine is alive."""
        return self._rx is not None

    # -------------------------------------------------------------------------
    # Protocol State Machine
    # -------------------------------------------------------------------------

    def _receive(self, count: int):
        data = bytearray()
        for _ in range(count):
            data.append((yield))
        return bytes(data)

    def _drain(self):
        while self.tx:
            yield

    def _ack_phase(self, ok: bool):
        self.tx.extend([FILLER, ACK if ok else NACK])
        yield from self._drain()
        if ok:
            self.echoes.append((yield))

    def _receive_address(self):
        frame = yield from self._receive(5)
        if not verify_frame(frame):
            return None
        return int.from_bytes(frame[:4], "big")

    def _in_flash(self, address: int, size: int = 1) -> bool:
        return FLASH_START <= address and address + size - 1 <= FLASH_END

    def _bootloader(self):
        byte = yield
        while byte != SOF or not self.echo_sync:
            byte = yield
        self.tx.append(SYNC_ECHO)
        yield from self._ack_phase(True)

        handlers = {
            0x00: self._get,
            0x01: self._get_version,
            0x02: self._get_id,
            0x11: self._read_memory,
            0x21: self._go,
            0x31: self._write_memory,
            0x44: self._erase,
        }

        while True:
            byte = yield
            if byte != SOF:
                continue
            opcode = yield
            complement = yield
            handler = handlers.get(opcode)
            if (
                complement != (~opcode & 0xFF)
                or handler is None
                or opcode in self.nack_commands
            ):
                yield from self._ack_phase(False)
                continue
            yield from self._ack_phase(True)
            if (yield from handler()) == "exit":
                return

    def _get(self):
        self.tx.extend([FILLER, len(self.commands), self.version, *self.commands])
        yield from self._drain()
        yield from self._ack_phase(0x00 not in self.nack_replies)

    def _get_version(self):
        self.tx.extend([FILLER, self.version])
        yield from self._drain()
        yield from self._ack_phase(0x01 not in self.nack_replies)

    def _get_id(self):
        self.tx.extend([FILLER, 1, self.product_id >> 8, self.product_id & 0xFF])
        yield from self._drain()
        yield from self._ack_phase(0x02 not in self.nack_replies)

    def _read_memory(self):
        address = yield from self._receive_address()
        if address is None or not self._in_flash(address):
            yield from self._ack_phase(False)
            return
        yield from self._ack_phase(True)

        n = yield
        complement = yield
        size = n + 1
        if complement != (~n & 0xFF) or not self._in_flash(address, size):
            yield from self._ack_phase(False)
            return
        yield from self._ack_phase(True)

        offset = address - FLASH_START
        data = bytearray(self.flash[offset:offset + size])
        for index in range(size):
            if offset + index in self.corrupt_reads:
                data[index] = self.corrupt_reads[offset + index]
        self.tx.extend([FILLER, *data])
        yield from self._drain()

    def _write_memory(self):
        address = yield from self._receive_address()
        if address is None or not self._in_flash(address):
            yield from self._ack_phase(False)
            return
        yield from self._ack_phase(True)

        n = yield
        payload = yield from self._receive(n + 1)
        checksum = yield
        ok = (
            checksum == xor_checksum(bytes([n]) + payload)
            and self._in_flash(address, len(payload))
            and address not in self.nack_write_addresses
        )
        if ok:
            offset = address - FLASH_START
            self.flash[offset:offset + len(payload)] = payload
        yield from self._ack_phase(ok)

    def _erase(self):
        frame = yield from self._receive(3)
        ok = verify_frame(frame) and frame[:2] == b"\xFF\xFF"
        if ok:
            self.flash[:] = b"\xFF" * len(self.flash)
            self.erase_count += 1
        yield from self._ack_phase(ok)

    def _go(self):
        address = yield from self._receive_address()
        if address is None:
            yield from self._ack_phase(False)
            return
        yield from self._ack_phase(True)
        self.go_address = address
        return "exit"


# =============================================================================
# Recording Transport
# =============================================================================

class FakeTransport(Transport):
    """
    Transport wired to a SimulatedBootloader.

    Attributes:
        sent: Every byte clocked out, in order
        delays: Every delay_ms() argument, in order
        lines: Control-line changes as ("reset"|"boot0", value) tuples
    """

    def __init__(self, device: SimulatedBootloader):
        self.device = device
        self.sent: list[int] = []
        self.delays: list[float] = []
        self.lines: list[tuple[str, bool]] = []
        self.closed = False

    def exchange(self, byte: int) -> int:
        self.sent.append(byte)
        return self.device.clock(byte)

    def set_reset(self, asserted: bool) -> None:
        self.lines.append(("reset", asserted))
        self.device.set_reset(asserted)

    def set_boot_mode(self, bootloader: bool) -> None:
        self.lines.append(("boot0", bootloader))
        self.device.boot0 = bootloader

    def delay_ms(self, milliseconds: float) -> None:
        self.delays.append(milliseconds)

    def close(self) -> None:
        self.closed = True

    def clear(self) -> None:
        """Forget recorded traffic."""
        self.sent.clear()
        self.delays.clear()
        self.lines.clear()


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def device() -> SimulatedBootloader:
    """Fixture: a fresh simulated bootloader."""
    return SimulatedBootloader()


@pytest.fixture
def transport(device) -> FakeTransport:
    """Fixture: a recording transport wired to the simulated device."""
    return FakeTransport(device)


@pytest.fixture
def client(transport):
    """Fixture: a BootloaderClient already synchronized with the device."""
    from stm32boot.comms.commands import BootloaderClient

    client = BootloaderClient(transport)
    client.enter_bootloader(max_attempts=16)
    transport.clear()
    return client
