"""
SPI Transport for the STM32 Bootloader
======================================

This module provides the byte-level link between the host and the target
device. It handles:

- The transport contract used by the frame protocol
- A Raspberry Pi implementation on top of spidev and gpiozero
- SPI device node enumeration
- Opening a transport from a BootConfig with helpful errors

Transport Contract
------------------
SPI is full duplex: every byte clocked out yields exactly one byte
clocked in. The bootloader frame protocol is built on that single
primitive, plus two control lines and a blocking delay:

- exchange(byte) -> int
- exchange_buffer(data) -> bytes
- set_reset(asserted): hold the target in reset (NRST low)
- set_boot_mode(bootloader): BOOT0 high selects the ROM bootloader
- delay_ms(ms): blocking sleep

Wiring
------
    Pi            STM32
    ----------    ----------
    SCLK          SPI1_SCK  (PA5)
    MOSI          SPI1_MOSI (PA7)
    MISO          SPI1_MISO (PA6)
    CE1           SPI1_NSS  (PA4)
    GPIO17        NRST
    GPIO26        BOOT0

SPI mode 0 (CPOL=0, CPHA=0), MSB first, 8-bit words.
"""

import glob
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Final, Optional

from gpiozero import DigitalOutputDevice

from stm32boot.config import BootConfig
from stm32boot.errors import ConnectionError

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Default SPI clock (the bootloader supports up to 8 MHz on F4 parts)
DEFAULT_SPEED_HZ: Final[int] = 500_000

# Highest clock the bootloader accepts
MAX_SPEED_HZ: Final[int] = 8_000_000

# SPI mode required by the bootloader (CPOL=0, CPHA=0)
SPI_MODE: Final[int] = 0

# Device nodes created by the Linux spidev driver
SPIDEV_GLOB: Final[str] = "/dev/spidev*.*"

_SPIDEV_PATTERN = re.compile(r"spidev(\d+)\.(\d+)$")


# =============================================================================
# Transport Contract
# =============================================================================

class Transport(ABC):
    """
    Byte exchange with the target plus its two control lines.

    Subclasses implement the exchange and the line controls; buffered
    exchange and delays have working defaults.
    """

    @abstractmethod
    def exchange(self, byte: int) -> int:
        """Clock one byte out and return the byte clocked in."""

    def exchange_buffer(self, data: bytes) -> bytes:
        """Clock a buffer out and return the bytes clocked in."""
        return bytes(self.exchange(b) for b in data)

    @abstractmethod
    def set_reset(self, asserted: bool) -> None:
        """Assert (NRST low) or release (NRST high) the target reset."""

    @abstractmethod
    def set_boot_mode(self, bootloader: bool) -> None:
        """Select the ROM bootloader (BOOT0 high) or user flash (BOOT0 low)."""

    def delay_ms(self, milliseconds: float) -> None:
        """Block for the given number of milliseconds."""
        if milliseconds > 0:
            time.sleep(milliseconds / 1000)

    def close(self) -> None:
        """Release the bus and the control lines."""

    def __enter__(self) -> "Transport":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


# =============================================================================
# SPI Device Information
# =============================================================================

@dataclass(frozen=True)
class SpiDeviceInfo:
    """
    An SPI device node exposed by the kernel.

    Attributes:
        path: Device node (e.g., '/dev/spidev0.1')
        bus: SPI controller number
        chip_select: Chip-select line on that controller
    """

    path: str
    bus: int
    chip_select: int

    def __str__(self) -> str:
        """Format device info for display."""
        return f"{self.path} (bus {self.bus}, CE{self.chip_select})"


def list_spi_devices() -> list[SpiDeviceInfo]:
    """
    List the SPI device nodes available on this system.

    Returns:
        SpiDeviceInfo objects sorted by bus and chip select. Empty when
        the spidev driver is not loaded (enable SPI in raspi-config).
    """
    devices = []

    for path in glob.glob(SPIDEV_GLOB):
        match = _SPIDEV_PATTERN.search(path)
        if not match:
            continue
        info = SpiDeviceInfo(
            path=path,
            bus=int(match.group(1)),
            chip_select=int(match.group(2)),
        )
        devices.append(info)
        logger.debug("Found SPI device: %s", info)

    return sorted(devices, key=lambda d: (d.bus, d.chip_select))


def format_device_list(devices: list[SpiDeviceInfo]) -> str:
    """
    Format a list of SPI devices for display to the user.

    Args:
        devices: List of SpiDeviceInfo objects to format.

    Returns:
        Formatted string with one device per line.
    """
    if not devices:
        return "No SPI devices found."
    return "\n".join(f"  {device}" for device in devices)


# =============================================================================
# Raspberry Pi Transport
# =============================================================================

class SpiTransport(Transport):
    """
    Transport over a Linux spidev node with gpiozero control lines.

    Usage:
        with SpiTransport(bus=0, device=1) as transport:
            transport.open()
            transport.set_reset(True)
            ...
    """

    def __init__(
        self,
        bus: int = 0,
        device: int = 1,
        speed_hz: int = DEFAULT_SPEED_HZ,
        reset_pin: int = 17,
        boot0_pin: int = 26,
    ):
        if not 0 < speed_hz <= MAX_SPEED_HZ:
            raise ValueError(
                f"Invalid SPI speed: {speed_hz} Hz, maximum {MAX_SPEED_HZ}"
            )
        self.bus = bus
        self.device = device
        self.speed_hz = speed_hz
        self.reset_pin = reset_pin
        self.boot0_pin = boot0_pin
        self._spi = None
        self._reset: Optional[DigitalOutputDevice] = None
        self._boot0: Optional[DigitalOutputDevice] = None

    @property
    def is_open(self) -> bool:
        """Return True once open() has succeeded."""
        return self._spi is not None

    def _check_open(self) -> None:
        if self._spi is None:
            raise ConnectionError(
                f"SPI transport is not open: /dev/spidev{self.bus}.{self.device}"
            )

    def open(self) -> None:
        """
        Open the SPI device and claim the two GPIO lines.

        NRST starts released and BOOT0 low, so opening the transport does
        not disturb a running target.
        """
        import spidev

        spi = spidev.SpiDev()
        spi.open(self.bus, self.device)
        spi.max_speed_hz = self.speed_hz
        spi.mode = SPI_MODE
        self._spi = spi

        # active_high=False: on() drives NRST low
        self._reset = DigitalOutputDevice(
            self.reset_pin, active_high=False, initial_value=False
        )
        self._boot0 = DigitalOutputDevice(self.boot0_pin, initial_value=False)

        logger.debug(
            "SPI opened: /dev/spidev%d.%d at %d Hz (NRST=GPIO%d, BOOT0=GPIO%d)",
            self.bus, self.device, self.speed_hz,
            self.reset_pin, self.boot0_pin,
        )

    def exchange(self, byte: int) -> int:
        self._check_open()
        return self._spi.xfer2([byte & 0xFF])[0]

    def exchange_buffer(self, data: bytes) -> bytes:
        self._check_open()
        return bytes(self._spi.xfer2(list(data)))

    def set_reset(self, asserted: bool) -> None:
        self._check_open()
        if asserted:
            self._reset.on()
        else:
            self._reset.off()

    def set_boot_mode(self, bootloader: bool) -> None:
        self._check_open()
        if bootloader:
            self._boot0.on()
        else:
            self._boot0.off()

    def close(self) -> None:
        if self._spi is not None:
            self._spi.close()
            self._spi = None
        for line in (self._reset, self._boot0):
            if line is not None:
                line.close()
        self._reset = None
        self._boot0 = None
        logger.debug("SPI transport closed")


# =============================================================================
# Transport Configuration
# =============================================================================

def open_transport(config: BootConfig) -> SpiTransport:
    """
    Open an SPI transport for the given configuration.

    Args:
        config: Bus and pin settings.

    Returns:
        Opened SpiTransport.

    Raises:
        ConnectionError: If the SPI node or GPIO lines cannot be claimed.
        ValueError: If the SPI speed is out of range.

    Note:
        The caller is responsible for closing the transport when done.
        Consider using it as a context manager.
    """
    transport = SpiTransport(
        bus=config.spi_bus,
        device=config.spi_device,
        speed_hz=config.speed_hz,
        reset_pin=config.reset_pin,
        boot0_pin=config.boot0_pin,
    )

    logger.info(
        "Opening SPI device: %s at %d Hz", config.spi_path, config.speed_hz
    )

    try:
        transport.open()
    except ImportError:
        transport.close()
        raise ConnectionError(
            "The spidev module is not installed. "
            "Install the SPI extra: pip install 'stm32-spiboot[spi]'"
        )
    except FileNotFoundError:
        transport.close()
        raise ConnectionError(
            f"SPI device not found: {config.spi_path}. "
            "Enable SPI with raspi-config or use --list-devices."
        )
    except PermissionError:
        transport.close()
        raise ConnectionError(
            f"Permission denied accessing {config.spi_path}. "
            "You may need to add your user to the 'spi' and 'gpio' groups: "
            "sudo usermod -a -G spi,gpio $USER"
        )
    except Exception as e:
        transport.close()
        raise ConnectionError(f"Cannot open {config.spi_path}: {e}")

    return transport


def close_transport(transport: Optional[Transport]) -> None:
    """
    Safely close a transport.

    Errors during close are logged and ignored.

    Args:
        transport: Transport to close (None is accepted).
    """
    if transport is None:
        return

    try:
        transport.close()
    except Exception as e:
        logger.warning("Error closing transport: %s", e)
