"""Delivery of a message to an SMTP server."""

from __future__ import annotations

import base64
import socket
from typing import TextIO

from quickmail.message import Message
from quickmail.mime import iter_message_data
from quickmail.smtp import SmtpConnection, SmtpError

ERROR_THRESHOLD = 400
"""Status codes at or above this value mean the server refused a command."""


class SendError(Exception):
    """Raised when a message could not be delivered."""


def plain_auth_token(username: str | None, password: str | None) -> str:
    """Return the base64 credentials for ``AUTH PLAIN``.

    The authorization identity is left empty so that it is the same as the
    authentication identity.
    """
    raw = b"\0" + (username or "").encode("utf-8") + b"\0" + (password or "").encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def _local_hostname() -> str:
    try:
        return socket.gethostname() or "localhost"
    except OSError:
        return "localhost"


def _refused(code: int) -> bool:
    return code >= ERROR_THRESHOLD


def _converse(
    conn: SmtpConnection,
    message: Message,
    username: str | None,
    password: str | None,
) -> None:
    hostname = _local_hostname()
    if _refused(conn.command("EHLO %s", hostname)) and _refused(
        conn.command("HELO %s", hostname)
    ):
        raise SendError("SMTP EHLO/HELO returned error")

    if username is not None or password is not None:
        token = plain_auth_token(username, password)
        if _refused(conn.command("AUTH PLAIN %s", token)):
            raise SendError("SMTP authentication failed")

    if _refused(conn.command("MAIL FROM:<%s>", message.from_address or "")):
        raise SendError("SMTP server did not accept sender")

    for label, addresses in (("To", message.to), ("CC", message.cc), ("BCC", message.bcc)):
        for address in addresses:
            if address and _refused(conn.command("RCPT TO:<%s>", address)):
                raise SendError(f"SMTP server did not accept e-mail address ({label})")

    if _refused(conn.command("DATA")):
        raise SendError("SMTP DATA returned error")

    try:
        for chunk in iter_message_data(message):
            conn.send(chunk)
    except SmtpError as exc:
        raise SendError("SMTP error after sending message data") from exc

    if _refused(conn.command("\r\n.")):
        raise SendError("SMTP error after sending message data")


def _deliver(
    message: Message,
    server: str,
    port: int,
    username: str | None,
    password: str | None,
    debug_log: TextIO | None,
    secure: bool,
) -> None:
    try:
        conn = SmtpConnection.connect(server, port, debug_log=debug_log, secure=secure)
    except SmtpError as exc:
        raise SendError(str(exc)) from exc
    with conn:
        if _refused(conn.command(None)):
            raise SendError("SMTP server returned an error on connection")
        try:
            _converse(conn, message, username, password)
        finally:
            conn.command("QUIT")


def send(
    message: Message,
    server: str,
    port: int = 25,
    username: str | None = None,
    password: str | None = None,
    debug_log: TextIO | None = None,
) -> None:
    """Send ``message`` over plain SMTP; raise SendError on failure."""
    _deliver(message, server, port, username, password, debug_log, secure=False)


def send_secure(
    message: Message,
    server: str,
    port: int = 465,
    username: str | None = None,
    password: str | None = None,
    debug_log: TextIO | None = None,
) -> None:
    """Send ``message`` over SMTP inside TLS; raise SendError on failure."""
    _deliver(message, server, port, username, password, debug_log, secure=True)