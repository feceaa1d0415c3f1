"""
stm32boot - STM32 SPI Bootloader Command-Line Interface
========================================================

This module implements the command-line tool that identifies, programs,
verifies and resets an STM32 target through its SPI bootloader.

Usage Examples
--------------
Show bootloader version, supported commands and product id:
    $ stm32boot -i

Program an image at the start of flash:
    $ stm32boot -p firmware.bin 0x08000000

Program, read back and compare:
    $ stm32boot -p firmware.bin 08000000 -v

Program and jump straight to the application:
    $ stm32boot -p firmware.bin 0x08000000 --go 0x08000000

Reset the target into user flash:
    $ stm32boot -r

Operations run in the order info, program (and verify), reset, whatever
order the options are given in.

Hardware Setup
--------------
Before using stm32boot, ensure:
1. SPI is enabled (raspi-config > Interface Options > SPI)
2. The user is in the 'spi' and 'gpio' groups
3. NRST and BOOT0 of the target are wired to the configured GPIOs

Exit Codes
----------
0 - Success
1 - The device refused an operation, or verification failed
2 - Invalid arguments
3 - Internal error
4 - Device error (no bootloader, bus failure, unsupported erase)
5 - Image or dump file cannot be opened
6 - Image does not fit in memory
7 - Short read of the image file
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from stm32boot import __version__
from stm32boot.cli.errors import ExitCode, handle_cli_exception
from stm32boot.comms import (
    BootloaderClient,
    close_transport,
    format_device_list,
    list_spi_devices,
    open_transport,
)
from stm32boot.config import BootConfig
from stm32boot.flash import FlashProgrammer
from stm32boot.image import load_image, save_dump

# Configure logging
logger = logging.getLogger(__name__)


# =============================================================================
# CLI Context and Utilities
# =============================================================================

class Context:
    """
    Settings for one stm32boot run.

    Combines the environment configuration with command-line overrides.
    """

    def __init__(self) -> None:
        self.config: BootConfig = BootConfig.from_env()
        self.debug: bool = False

    def apply(self, **overrides: Optional[object]) -> None:
        """Override configuration fields given on the command line."""
        for name, value in overrides.items():
            if value is not None:
                setattr(self.config, name, value)

    def setup_logging(self) -> None:
        """Configure logging based on verbosity."""
        level = logging.DEBUG if self.debug else logging.INFO
        logging.basicConfig(
            level=level,
            format="%(levelname)s: %(message)s" if self.debug else "%(message)s",
        )


class HexAddress(click.ParamType):
    """Hexadecimal address, with or without a 0x prefix."""

    name = "address"

    def convert(self, value, param, ctx):
        if isinstance(value, int):
            return value
        text = value.strip()
        if text.lower().startswith("0x"):
            text = text[2:]
        try:
            address = int(text, 16)
        except ValueError:
            self.fail(f"{value!r} is not a hexadecimal address", param, ctx)
        if not 0 <= address <= 0xFFFFFFFF:
            self.fail(f"{value!r} does not fit in 32 bits", param, ctx)
        return address


HEX_ADDRESS = HexAddress()


def progress_bar(current: int, total: int) -> None:
    """Simple text progress bar for flash transfers."""
    if total == 0:
        return
    percent = current * 100 // total
    filled = percent // 2
    bar = "=" * filled + "-" * (50 - filled)
    click.echo(f"\r[{bar}] {percent:3d}% ({current}/{total} bytes)", nl=False)
    if current >= total:
        click.echo()  # Newline at end


def print_device_info(client: BootloaderClient) -> None:
    """Print what GET, GET_VERSION and GET_ID reported."""
    session = client.session
    click.echo(f"Bootloader version: {session.version_string}")
    if session.supported_commands:
        commands = " ".join(f"0x{op:02X}" for op in session.supported_commands)
        click.echo(f"Supported commands: {commands}")
    if session.product_id is not None:
        click.echo(f"Product ID: 0x{session.product_id:04X}")


# =============================================================================
# Operations
# =============================================================================

def run_info(client: BootloaderClient, config: BootConfig) -> bool:
    """Enter the bootloader, identify the device and reset it."""
    client.enter_bootloader(max_attempts=config.sync_attempts)
    ok = client.query_info()
    if ok:
        print_device_info(client)
    else:
        click.echo("Error: device identification failed", err=True)
    client.reset()
    return ok


def release_target(client: BootloaderClient) -> None:
    """Reset a target left in the bootloader back into user flash."""
    try:
        client.reset()
    except Exception as e:
        logger.error("Could not reset the target: %s", e)


def run_program(
    client: BootloaderClient,
    config: BootConfig,
    image: bytes,
    address: int,
    verify: bool,
    go: Optional[int],
) -> bool:
    """Enter the bootloader, program the image and leave the bootloader."""
    client.enter_bootloader(max_attempts=config.sync_attempts)
    programmer = FlashProgrammer(client, progress=progress_bar)

    click.echo(
        f"Program starts at 0x{address:08X}, ends at "
        f"0x{address + len(image) - 1:08X}, size is {len(image)}"
    )
    ok = programmer.program(image, address)

    if ok:
        click.echo("Program is fully loaded")
    else:
        click.echo("Error: programming failed", err=True)

    if ok and verify:
        result = programmer.verify(image, address)
        if result.data is not None:
            save_dump(config.dump_path, result.data)
        if result.ok:
            click.echo("Verification is successful")
        elif result.data is None:
            click.echo("Error: read back failed", err=True)
            ok = False
        else:
            click.echo(
                f"Error: verification failed at offset 0x{result.mismatch:08X}",
                err=True,
            )
            ok = False

    if ok and go is not None:
        if client.go(go):
            click.echo(f"Started application at 0x{go:08X}")
            return True
        click.echo(f"Error: GO 0x{go:08X} was refused", err=True)
        ok = False

    client.reset()
    return ok


# =============================================================================
# Main Command
# =============================================================================

@click.command()
@click.option(
    "-i", "--info",
    is_flag=True,
    help="Show bootloader version, supported commands and product id",
)
@click.option(
    "-p", "--program",
    type=(click.Path(dir_okay=False, path_type=Path), HEX_ADDRESS),
    default=None,
    metavar="IMAGE ADDRESS",
    help="Erase flash and program IMAGE at hexadecimal ADDRESS",
)
@click.option(
    "-v", "--verify",
    is_flag=True,
    help="Read the programmed range back and compare (with -p)",
)
@click.option(
    "-r", "--reset",
    is_flag=True,
    help="Reset the target into user flash",
)
@click.option(
    "--go",
    type=HEX_ADDRESS,
    default=None,
    metavar="ADDRESS",
    help="Jump to ADDRESS after programming instead of resetting (with -p)",
)
@click.option(
    "--dump",
    type=click.Path(dir_okay=False),
    default=None,
    help="Read-back dump file for -v (default: read.bin)",
)
@click.option("--bus", type=int, default=None, help="SPI bus (default: 0)")
@click.option("--device", type=int, default=None, help="SPI chip select (default: 1)")
@click.option("--speed", type=int, default=None, help="SPI clock in Hz (default: 500000)")
@click.option("--reset-pin", type=int, default=None, help="NRST GPIO, BCM numbering (default: 17)")
@click.option("--boot0-pin", type=int, default=None, help="BOOT0 GPIO, BCM numbering (default: 26)")
@click.option(
    "--sync-attempts",
    type=click.IntRange(min=1),
    default=None,
    help="Give up synchronization after this many attempts (default: never)",
)
@click.option(
    "--ack-poll-limit",
    type=click.IntRange(min=1),
    default=None,
    help="Give up waiting for ACK after this many polls (default: never)",
)
@click.option(
    "--list-devices",
    is_flag=True,
    help="List SPI devices and exit",
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug output",
)
@click.version_option(version=__version__, prog_name="stm32boot")
def main(
    info: bool,
    program: Optional[tuple[Path, int]],
    verify: bool,
    reset: bool,
    go: Optional[int],
    dump: Optional[str],
    bus: Optional[int],
    device: Optional[int],
    speed: Optional[int],
    reset_pin: Optional[int],
    boot0_pin: Optional[int],
    sync_attempts: Optional[int],
    ack_poll_limit: Optional[int],
    list_devices: bool,
    debug: bool,
) -> None:
    """
    Program STM32 flash through the SPI bootloader.

    The target is reset into its ROM bootloader by driving BOOT0 and
    NRST, programmed over SPI, and reset back into user flash.

    \b
    Examples:
        stm32boot -i                               # Identify the device
        stm32boot -p app.bin 0x08000000 -v         # Program and verify
        stm32boot -r                               # Reset to user flash

    Settings can also be given through STM32BOOT_* environment variables.
    """
    ctx = Context()
    ctx.debug = debug
    ctx.apply(
        spi_bus=bus,
        spi_device=device,
        speed_hz=speed,
        reset_pin=reset_pin,
        boot0_pin=boot0_pin,
        sync_attempts=sync_attempts,
        ack_poll_limit=ack_poll_limit,
        dump_path=dump,
    )
    ctx.setup_logging()
    config = ctx.config

    if list_devices:
        click.echo("Available SPI devices:")
        click.echo(format_device_list(list_spi_devices()))
        return

    if not (info or program or reset):
        raise click.UsageError("Nothing to do: give at least one of -i, -p or -r")
    if verify and not program:
        raise click.UsageError("-v/--verify requires -p/--program")
    if go is not None and not program:
        raise click.UsageError("--go requires -p/--program")

    transport = None
    client = None
    ok = True
    try:
        image = None
        if program:
            image = load_image(program[0])

        transport = open_transport(config)
        client = BootloaderClient(transport, ack_poll_limit=config.ack_poll_limit)

        if info:
            ok = run_info(client, config) and ok

        if program:
            ok = run_program(client, config, image, program[1], verify, go) and ok

        if reset:
            client.reset()

    except Exception as e:
        handle_cli_exception(e, verbose=debug)
    finally:
        if client is not None and client.session.in_bootloader:
            release_target(client)
        close_transport(transport)

    if not ok:
        sys.exit(ExitCode.OPERATION_FAILED)


if __name__ == "__main__":
    main()
