"""The e-mail message: addresses, subject, extra headers, bodies and attachments."""

from __future__ import annotations

import time
from collections.abc import Iterable

from quickmail.attachments import (
    Attachment,
    AttachmentList,
    Opener,
    custom_attachment,
    file_attachment,
    memory_attachment,
)

VERSION = "0.1.25"
DEFAULT_MIME_TYPE = "text/plain"
NEWLINE = "\r\n"


def get_version() -> str:
    """Return the library version."""
    return VERSION


def _present(addresses: Iterable[str | None]) -> list[str]:
    return [address for address in addresses if address]


def concatenate_addresses(addresses: Iterable[str | None]) -> str:
    """Join addresses for a header, each in angle brackets.

    Empty or missing addresses are skipped; the result is empty when none remain.
    """
    return ("," + NEWLINE + "\t").join(f"<{address}>" for address in _present(addresses))


class Message:
    """An e-mail message under construction."""

    def __init__(
        self,
        from_address: str | None = None,
        subject: str | None = None,
        sender_name: str | None = None,
        timestamp: int | None = None,
    ) -> None:
        self.from_address = from_address
        self.subject = subject
        self.sender_name = sender_name
        # a timestamp of 0 leaves the Date header out
        self.timestamp = int(time.time()) if timestamp is None else timestamp
        self.to: list[str | None] = []
        self.cc: list[str | None] = []
        self.bcc: list[str | None] = []
        self.headers: list[str] = []
        self.body_list = AttachmentList()
        self.attachment_list = AttachmentList()

    @property
    def header_text(self) -> str:
        """The extra header lines, each ended by CR LF."""
        return "".join(line + NEWLINE for line in self.headers)

    def add_to(self, email: str | None) -> None:
        """Add a recipient."""
        self.to.append(email)

    def add_cc(self, email: str | None) -> None:
        """Add a carbon-copy recipient."""
        self.cc.append(email)

    def add_bcc(self, email: str | None) -> None:
        """Add a blind carbon-copy recipient."""
        self.bcc.append(email)

    def add_header(self, line: str) -> None:
        """Add an extra header line."""
        self.headers.append(line)

    def set_body(self, body: str | bytes | None) -> None:
        """Replace all bodies with a single plain-text body (or none)."""
        self.body_list.clear()
        if body is not None:
            self.body_list.add(memory_attachment(DEFAULT_MIME_TYPE, DEFAULT_MIME_TYPE, body))

    def get_body(self) -> bytes | None:
        """Return the content of the first body, or None if it cannot be read."""
        first = next(iter(self.body_list), None)
        if first is None:
            return None
        try:
            with first.open() as stream:
                return stream.read()
        except OSError:
            return None

    def add_body_file(self, path: str, mimetype: str | None = None) -> Attachment:
        """Add a body read from the file at ``path``."""
        return self.body_list.add(
            custom_attachment(None, mimetype or DEFAULT_MIME_TYPE, lambda: open(path, "rb"))
        )

    def add_body_memory(self, data: bytes | str | None, mimetype: str | None = None) -> Attachment:
        """Add a body held in memory."""
        return self.body_list.add(memory_attachment(None, mimetype or DEFAULT_MIME_TYPE, data))

    def add_body_custom(self, opener: Opener | None, mimetype: str | None = None) -> Attachment:
        """Add a body whose content comes from ``opener``."""
        return self.body_list.add(custom_attachment(None, mimetype or DEFAULT_MIME_TYPE, opener))

    def remove_body(self, mimetype: str) -> Attachment:
        """Remove the body registered under ``mimetype``; raise KeyError if absent."""
        return self.body_list.remove(mimetype)

    def bodies(self) -> list[Attachment]:
        """Return the bodies in order."""
        return list(self.body_list)

    def add_attachment_file(self, path: str, mimetype: str | None = None) -> Attachment:
        """Attach the file at ``path`` under its base name."""
        return self.attachment_list.add(file_attachment(path, mimetype))

    def add_attachment_memory(
        self, filename: str | None, data: bytes | str | None, mimetype: str | None = None
    ) -> Attachment:
        """Attach content held in memory."""
        return self.attachment_list.add(memory_attachment(filename, mimetype, data))

    def add_attachment_custom(
        self, filename: str | None, opener: Opener | None, mimetype: str | None = None
    ) -> Attachment:
        """Attach content supplied by ``opener``."""
        return self.attachment_list.add(custom_attachment(filename, mimetype, opener))

    def remove_attachment(self, filename: str) -> Attachment:
        """Remove the attachment named ``filename``; raise KeyError if absent."""
        return self.attachment_list.remove(filename)

    def attachments(self) -> list[Attachment]:
        """Return the attachments in order."""
        return list(self.attachment_list)

    def recipients(self) -> list[str]:
        """Return every non-empty To, Cc and Bcc address, in that order."""
        return _present([*self.to, *self.cc, *self.bcc])