"""Program persistence for EVO-VM.

A program file is exactly MEM_SIZE raw bytes: no header, no checksum, no
version tag. Byte i of the file is memory cell i.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Sequence, Union

from .isa import MEM_SIZE


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class ProgramIOError(OSError):
    """A program file could not supply a full memory image."""


def save_program(path: PathLike, image: Sequence[int]) -> None:
    """Write a memory image to ``path``.

    Args:
        path: Destination file (created or atomically replaced)
        image: Exactly MEM_SIZE byte values

    Raises:
        ValueError: If the image is not MEM_SIZE bytes
        OSError: If the file cannot be written
    """
    data = bytes(image)
    if len(data) != MEM_SIZE:
        raise ValueError(f"Program image must be {MEM_SIZE} bytes, got {len(data)}")

    # Write a sibling temp file and rename it over path, so readers never
    # see a partial image
    target = Path(path)
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, target)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
    logger.debug("Wrote %d-byte program to %s", MEM_SIZE, path)


def load_program(path: PathLike) -> bytes:
    """Read a memory image from ``path``.

    Only the first MEM_SIZE bytes are used; trailing bytes are ignored.

    Args:
        path: Program file

    Returns:
        MEM_SIZE bytes

    Raises:
        ProgramIOError: If the file holds fewer than MEM_SIZE bytes
        OSError: If the file cannot be opened or read
    """
    with open(path, "rb") as f:
        data = f.read(MEM_SIZE)
    if len(data) < MEM_SIZE:
        raise ProgramIOError(
            f"Program file {path} is too short: expected {MEM_SIZE} bytes, got {len(data)}"
        )
    return data


def parse_hex(text: str) -> bytes:
    """Parse whitespace/comma separated hex bytes, e.g. ``"07 07 07 FF"``.

    A ``0x`` prefix on each byte is accepted.

    Raises:
        ValueError: If a token is not a byte in hex
    """
    values = []
    for token in text.replace(",", " ").split():
        value = int(token, 16)
        if not 0 <= value <= 0xFF:
            raise ValueError(f"Not a byte: {token}")
        values.append(value)
    return bytes(values)
