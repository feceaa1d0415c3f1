"""
Firmware image files.

Images are raw binaries (objcopy -O binary), loaded whole into memory.
The verification read-back is written out the same way so it can be
compared with the image using any binary diff tool.
"""

import logging
from pathlib import Path
from typing import Union

from stm32boot.errors import ImageMemoryError, ImageOpenError, ImageReadError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def load_image(path: PathLike) -> bytes:
    """
    Load a raw firmware image.

    Args:
        path: Image file.

    Returns:
        File contents.

    Raises:
        ImageOpenError: If the file cannot be opened.
        ImageMemoryError: If the image does not fit in memory.
        ImageReadError: If fewer bytes were read than the file size.
    """
    path = Path(path)

    try:
        with path.open("rb") as f:
            expected = path.stat().st_size
            data = f.read()
    except MemoryError:
        raise ImageMemoryError(f"Not enough memory to load {path}", str(path))
    except OSError as e:
        raise ImageOpenError(f"Cannot open image {path}: {e.strerror or e}", str(path))

    if len(data) != expected:
        raise ImageReadError(
            f"Read {len(data)} of {expected} bytes from {path}", str(path)
        )

    logger.info("Loaded image: %s (%d bytes)", path.name, len(data))
    return data


def save_dump(path: PathLike, data: bytes) -> None:
    """
    Write read-back data to a file, replacing it if it exists.

    Raises:
        ImageOpenError: If the file cannot be written.
    """
    path = Path(path)

    try:
        path.write_bytes(data)
    except OSError as e:
        raise ImageOpenError(f"Cannot write dump {path}: {e.strerror or e}", str(path))

    logger.info("Read-back written to %s (%d bytes)", path, len(data))
