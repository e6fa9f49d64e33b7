"""Message bodies and attachments and the ordered list that holds them."""

from __future__ import annotations

import io
import os
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import BinaryIO

UNNAMED = "UNNAMED"

Opener = Callable[[], BinaryIO]


@dataclass
class Attachment:
    """A named piece of content that can be opened for reading.

    ``opener`` returns a readable binary stream, or raises ``OSError`` when the
    content cannot be opened.
    """

    filename: str
    mimetype: str | None
    opener: Opener

    def __post_init__(self) -> None:
        if self.filename is None:
            self.filename = UNNAMED

    def open(self) -> BinaryIO:
        """Open the content for reading."""
        return self.opener()


def base_name(path: str) -> str:
    """Return the part of ``path`` after its last directory separator."""
    separators = "/\\:" if os.name == "nt" else "/"
    cut = max(path.rfind(sep) for sep in separators)
    return path[cut + 1:]


def file_attachment(path: str, mimetype: str | None = None) -> Attachment:
    """An attachment read from a file, named after the file's base name."""
    return Attachment(base_name(path), mimetype, lambda: open(path, "rb"))


def memory_attachment(
    filename: str | None, mimetype: str | None, data: bytes | str | None
) -> Attachment:
    """An attachment held in memory; text is stored as UTF-8."""
    payload = data.encode("utf-8") if isinstance(data, str) else data

    def opener() -> BinaryIO:
        if payload is None:
            raise OSError("attachment has no data")
        return io.BytesIO(payload)

    return Attachment(filename, mimetype, opener)


def _empty() -> BinaryIO:
    return io.BytesIO(b"")


def custom_attachment(
    filename: str | None, mimetype: str | None, opener: Opener | None
) -> Attachment:
    """An attachment with a caller-supplied opener; without one it is empty."""
    return Attachment(filename, mimetype, opener if opener is not None else _empty)


class AttachmentList:
    """An ordered collection of attachments."""

    def __init__(self) -> None:
        self._items: list[Attachment] = []

    def add(self, attachment: Attachment) -> Attachment:
        """Append ``attachment`` and return it."""
        self._items.append(attachment)
        return attachment

    def remove(self, filename: str) -> Attachment:
        """Remove and return the first attachment named ``filename``.

        Raises ``KeyError`` if there is none.
        """
        for position, attachment in enumerate(self._items):
            if attachment.filename == filename:
                return self._items.pop(position)
        raise KeyError(filename)

    def clear(self) -> None:
        """Remove every attachment."""
        self._items.clear()

    def __iter__(self) -> Iterator[Attachment]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)