"""Generation of the raw message text: headers, bodies and base64 attachments."""

from __future__ import annotations

import base64
import random
from collections.abc import Iterable, Iterator
from datetime import datetime
from typing import BinaryIO, Protocol

from quickmail.attachments import Attachment
from quickmail.message import DEFAULT_MIME_TYPE, NEWLINE, Message, concatenate_addresses

MIME_LINE_WIDTH = 72
BODY_BUFFER_SIZE = 256
DEFAULT_ATTACHMENT_TYPE = "application/octet-stream"

_PART_TEMPLATE = "=PART=SEPARATOR=_0000_0000_0000_0000_0000_0000_="
_BODY_TEMPLATE = "=BODY=SEPARATOR=_0000_0000_0000_0000_0000_0000_="

# bytes of input per encoded line: four output characters per three input bytes
_LINE_INPUT = MIME_LINE_WIDTH // 4 * 3

_DAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


class _Rng(Protocol):
    def randrange(self, stop: int) -> int: ...


class _Writable(Protocol):
    def write(self, data: bytes) -> object: ...


def randomize_zeros(text: str, rng: _Rng | None = None) -> str:
    """Replace every ``0`` in ``text`` with a random decimal digit."""
    source = rng if rng is not None else random
    return "".join(str(source.randrange(10)) if char == "0" else char for char in text)


def format_date(timestamp: float) -> str:
    """Format ``timestamp`` as a Date header value in local time, in English."""
    moment = datetime.fromtimestamp(timestamp).astimezone()
    return (
        f"{_DAYS[moment.weekday()]}, {moment.day:02d} {_MONTHS[moment.month - 1]} "
        f"{moment.year} {moment:%H:%M:%S} {moment:%z}"
    )


def encode_base64_lines(chunks: Iterable[bytes]) -> Iterator[str]:
    """Encode a stream of byte chunks as base64 lines ended by CR LF.

    Every line but the last holds exactly 72 characters.
    """
    pending = bytearray()
    for chunk in chunks:
        pending += chunk
        while len(pending) >= _LINE_INPUT:
            block = bytes(pending[:_LINE_INPUT])
            del pending[:_LINE_INPUT]
            yield base64.b64encode(block).decode("ascii") + NEWLINE
    if pending:
        yield base64.b64encode(bytes(pending)).decode("ascii") + NEWLINE


def _read_chunks(stream: BinaryIO, size: int = BODY_BUFFER_SIZE) -> Iterator[bytes]:
    while True:
        chunk = stream.read(size)
        if not chunk:
            return
        yield chunk


def _try_open(item: Attachment) -> BinaryIO | None:
    try:
        return item.open()
    except OSError:
        return None


def _header(message: Message, part_boundary: str | None, body_boundary: str | None) -> str:
    lines = ["User-Agent: FAX" + NEWLINE]
    if message.timestamp:
        lines.append("Date: " + format_date(message.timestamp) + NEWLINE)
    if message.from_address:
        lines.append(f"From: {message.sender_name or ''} <{message.from_address}>" + NEWLINE)
    to = concatenate_addresses(message.to)
    if to:
        lines.append("To: " + to + NEWLINE)
    cc = concatenate_addresses(message.cc)
    if cc:
        lines.append("Cc: " + cc + NEWLINE)
    if message.subject is not None:
        lines.append("Subject: " + message.subject + NEWLINE)
    lines.append(message.header_text)
    if part_boundary is not None:
        lines.append("MIME-Version: 1.0" + NEWLINE)
        lines.append(
            f'Content-Type: multipart/mixed; boundary="{part_boundary}"'
            + NEWLINE + NEWLINE
            + "This is a multipart message in MIME format."
            + NEWLINE + NEWLINE
            + "--" + part_boundary + NEWLINE
        )
    if body_boundary is not None:
        lines.append(
            f'Content-Type: multipart/alternative; boundary="{body_boundary}"' + NEWLINE
        )
    return "".join(lines)


def _body_header(body: Attachment, body_boundary: str | None) -> str:
    opening = NEWLINE + "--" + body_boundary + NEWLINE if body_boundary is not None else ""
    return (
        opening
        + "Content-Type: " + (body.mimetype or DEFAULT_MIME_TYPE) + NEWLINE
        + "Content-Transfer-Encoding: 8bit" + NEWLINE
        + "Content-Disposition: inline" + NEWLINE + NEWLINE
    )


def _attachment_header(attachment: Attachment, part_boundary: str | None) -> str:
    opening = NEWLINE + "--" + part_boundary + NEWLINE if part_boundary is not None else ""
    name = attachment.filename or "ATTACHMENT"
    return (
        opening
        + "Content-Type: " + (attachment.mimetype or DEFAULT_ATTACHMENT_TYPE)
        + f'; Name="{name}"' + NEWLINE
        + f'Content-Disposition: attachment; filename="{name}"' + NEWLINE
        + "Content-Transfer-Encoding: base64" + NEWLINE + NEWLINE
    )


def iter_message_data(message: Message, rng: _Rng | None = None) -> Iterator[bytes]:
    """Yield the complete message text in chunks.

    Bodies or attachments that cannot be opened are left out.
    """
    bodies = message.bodies()
    attachments = message.attachments()
    part_boundary = randomize_zeros(_PART_TEMPLATE, rng) if attachments else None
    body_boundary = randomize_zeros(_BODY_TEMPLATE, rng) if len(bodies) > 1 else None

    yield _header(message, part_boundary, body_boundary).encode("utf-8")

    for body in bodies:
        stream = _try_open(body)
        if stream is None:
            continue
        with stream:
            yield _body_header(body, body_boundary).encode("utf-8")
            yield from _read_chunks(stream)

    if body_boundary is not None:
        yield (NEWLINE + "--" + body_boundary + "--" + NEWLINE).encode("utf-8")

    for attachment in attachments:
        stream = _try_open(attachment)
        if stream is None:
            continue
        with stream:
            yield _attachment_header(attachment, part_boundary).encode("utf-8")
            for line in encode_base64_lines(_read_chunks(stream, 3 * MIME_LINE_WIDTH)):
                yield line.encode("ascii")

    if part_boundary is not None:
        yield (NEWLINE + "--" + part_boundary + "--" + NEWLINE).encode("utf-8")


def message_bytes(message: Message, rng: _Rng | None = None) -> bytes:
    """Return the complete message text."""
    return b"".join(iter_message_data(message, rng))


def save_message(message: Message, stream: _Writable, rng: _Rng | None = None) -> int:
    """Write the complete message text to a binary ``stream``; return the byte count."""
    total = 0
    for chunk in iter_message_data(message, rng):
        stream.write(chunk)
        total += len(chunk)
    return total