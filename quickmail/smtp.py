"""A TCP connection that speaks the SMTP command and response protocol."""

from __future__ import annotations

import re
import select
import socket
import ssl
import struct
from types import TracebackType
from typing import TextIO

ERROR_CODE = 999
"""Status code reported when no valid response could be read."""

_FINAL_LINE = re.compile(r"[0-9]{3} ")
_LEADING_INT = re.compile(r"\s*([+-]?[0-9]+)")


class SmtpError(Exception):
    """Raised when the SMTP connection cannot be opened or used."""


def _leading_int(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


class SmtpConnection:
    """An open connection to an SMTP server."""

    def __init__(self, sock: socket.socket, debug_log: TextIO | None = None) -> None:
        self._sock = sock
        self.debug_log = debug_log

    @classmethod
    def connect(
        cls,
        host: str,
        port: int,
        debug_log: TextIO | None = None,
        secure: bool = False,
        timeout: float | None = None,
    ) -> SmtpConnection:
        """Resolve ``host`` and open a connection to it on ``port``."""
        try:
            address = socket.gethostbyname(host)
        except (OSError, UnicodeError) as exc:
            raise SmtpError("Unable to resolve SMTP server host name") from exc
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP)
        except OSError as exc:
            raise SmtpError("Error creating socket for SMTP connection") from exc
        sock.settimeout(timeout)
        try:
            sock.connect((address, port))
        except OSError as exc:
            sock.close()
            raise SmtpError("Error connecting to SMTP server") from exc
        try:
            # linger two seconds when disconnecting
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 2))
        except (OSError, struct.error):
            pass
        if secure:
            context = ssl.create_default_context()
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            try:
                sock = context.wrap_socket(sock, server_hostname=host)
            except OSError as exc:
                sock.close()
                raise SmtpError("Error establishing secure SMTP connection") from exc
        return cls(sock, debug_log)

    def send(self, data: bytes | str) -> int:
        """Send all of ``data`` and return the number of bytes sent."""
        payload = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        try:
            self._sock.sendall(payload)
        except OSError as exc:
            raise SmtpError("Error sending data to SMTP server") from exc
        return len(payload)

    def data_waiting(self, timeout: float = 0) -> bool:
        """Return True if data can be read within ``timeout`` seconds."""
        if isinstance(self._sock, ssl.SSLSocket) and self._sock.pending():
            return True
        try:
            readable, _, _ = select.select([self._sock], [], [], timeout)
        except (OSError, ValueError) as exc:
            raise SmtpError("Error polling SMTP connection") from exc
        return bool(readable)

    def _recv_byte(self) -> bytes:
        try:
            byte = self._sock.recv(1)
        except OSError as exc:
            raise SmtpError("Error receiving data from SMTP server") from exc
        if not byte:
            raise SmtpError("Connection closed by SMTP server")
        return byte

    def _read_line(self) -> str:
        line = bytearray()
        while True:
            byte = self._recv_byte()
            if byte == b"\r":
                byte = self._recv_byte()
            if byte == b"\n":
                break
            line += byte
        return line.decode("utf-8", errors="replace")

    def receive_response(self) -> str:
        """Read a complete, possibly multi-line, response.

        Lines are joined with a line feed; reading stops after the line that
        starts with three digits followed by a space.
        """
        lines = []
        while True:
            line = self._read_line()
            lines.append(line)
            if _FINAL_LINE.match(line):
                return "\n".join(lines)

    def get_code(self) -> tuple[int, str]:
        """Read a response and return its status code and message text."""
        try:
            text = self.receive_response()
        except SmtpError:
            return ERROR_CODE, ""
        if len(text) < 4 or text[3] not in " -":
            return ERROR_CODE, ""
        return _leading_int(text[:3]), text[4:]

    def _log(self, line: str) -> None:
        if self.debug_log is not None:
            self.debug_log.write(line + "\n")

    def command(self, template: str | None, *args: object) -> int:
        """Send a command (if ``template`` is given) and return the status code."""
        if template is not None:
            cmd = template % args if args else template
            self._log(f"SMTP> {cmd}")
            try:
                self.send(cmd + "\r\n")
            except SmtpError:
                return ERROR_CODE
        code, message = self.get_code()
        self._log(f"SMTP< {code} {message}")
        return code

    def close(self) -> None:
        """Shut down and close the connection."""
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._sock.close()

    def __enter__(self) -> SmtpConnection:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()