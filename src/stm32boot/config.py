"""
stm32boot Configuration
=======================

Bus, pin and protocol settings for a programming run. Configuration can
come from:
- Default values (defined here, matching a Raspberry Pi wired to an
  STM32F401 on SPI1 CE1)
- Environment variables
- Command-line options (applied by the CLI on top of the above)

Pin numbers use BCM numbering, as expected by gpiozero.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class BootConfig:
    """
    Settings for talking to the STM32 bootloader.

    Attributes:
        spi_bus: SPI bus number (/dev/spidev<bus>.<device>)
        spi_device: Chip-select number on that bus
        speed_hz: SPI clock in Hz (default: 500 kHz)
        reset_pin: GPIO driving the target NRST line
        boot0_pin: GPIO driving the target BOOT0 line
        sync_attempts: Give up synchronization after this many SOF bytes
                       (None waits forever)
        ack_poll_limit: Give up waiting for ACK/NACK after this many polls
                        (None waits forever)
        dump_path: Where the verification read-back is written
    """

    # ═══════════════════════════════════════════════════════════════════════════
    # BUS
    # ═══════════════════════════════════════════════════════════════════════════

    spi_bus: int = 0
    spi_device: int = 1
    speed_hz: int = 500_000

    # ═══════════════════════════════════════════════════════════════════════════
    # CONTROL LINES
    # ═══════════════════════════════════════════════════════════════════════════

    reset_pin: int = 17  # wiringPi 0 / physical pin 11
    boot0_pin: int = 26  # physical pin 37

    # ═══════════════════════════════════════════════════════════════════════════
    # PROTOCOL
    # ═══════════════════════════════════════════════════════════════════════════

    sync_attempts: Optional[int] = None
    ack_poll_limit: Optional[int] = None

    # ═══════════════════════════════════════════════════════════════════════════
    # FILES
    # ═══════════════════════════════════════════════════════════════════════════

    dump_path: str = "read.bin"

    # ═══════════════════════════════════════════════════════════════════════════
    # FACTORY METHODS
    # ═══════════════════════════════════════════════════════════════════════════

    @classmethod
    def from_env(cls) -> "BootConfig":
        """
        Create BootConfig from environment variables.

        Environment variables (all optional):
            STM32BOOT_SPI_BUS: SPI bus number
            STM32BOOT_SPI_DEVICE: SPI chip select
            STM32BOOT_SPI_SPEED: SPI clock in Hz
            STM32BOOT_RESET_PIN: NRST GPIO (BCM)
            STM32BOOT_BOOT0_PIN: BOOT0 GPIO (BCM)
            STM32BOOT_SYNC_ATTEMPTS: Synchronization attempt limit
            STM32BOOT_ACK_POLL_LIMIT: ACK poll limit
            STM32BOOT_DUMP_PATH: Read-back dump file

        Returns:
            BootConfig with values from environment variables
        """
        config = cls()

        int_fields = {
            "STM32BOOT_SPI_BUS": "spi_bus",
            "STM32BOOT_SPI_DEVICE": "spi_device",
            "STM32BOOT_SPI_SPEED": "speed_hz",
            "STM32BOOT_RESET_PIN": "reset_pin",
            "STM32BOOT_BOOT0_PIN": "boot0_pin",
            "STM32BOOT_SYNC_ATTEMPTS": "sync_attempts",
            "STM32BOOT_ACK_POLL_LIMIT": "ack_poll_limit",
        }

        for variable, attribute in int_fields.items():
            if value := os.environ.get(variable):
                try:
                    setattr(config, attribute, int(value, 0))
                except ValueError:
                    pass  # Ignore invalid values

        if dump_path := os.environ.get("STM32BOOT_DUMP_PATH"):
            config.dump_path = dump_path

        return config

    @property
    def spi_path(self) -> str:
        """Device node for the configured bus and chip select."""
        return f"/dev/spidev{self.spi_bus}.{self.spi_device}"
