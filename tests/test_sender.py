import base64
import io
import socket
import threading

import pytest

from quickmail.message import Message
from quickmail.sender import SendError, plain_auth_token, send, send_secure


class FakeSmtpServer:
    def __init__(self, greeting=b"220 ready", failures=None, ehlo_multiline=True):
        self.greeting = greeting
        self.failures = failures or {}
        self.ehlo_multiline = ehlo_multiline
        self.commands = []
        self.data = b""
        self.listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.listener.bind(("127.0.0.1", 0))
        self.listener.listen(1)
        self.listener.settimeout(10)
        self.port = self.listener.getsockname()[1]
        self.thread = threading.Thread(target=self._serve, daemon=True)
        self.thread.start()

    def _reply(self, conn, line):
        for prefix, code in self.failures.items():
            if line.startswith(prefix):
                conn.sendall(f"{code} refused\r\n".encode())
                return
        verb = line.split(" ", 1)[0].upper()
        if verb == "EHLO" and self.ehlo_multiline:
            conn.sendall(b"250-hello\r\n250 OK\r\n")
        else:
            conn.sendall(b"250 OK\r\n")

    def _serve(self):
        try:
            conn, _ = self.listener.accept()
        except OSError:
            return
        conn.settimeout(10)
        with conn, conn.makefile("rb") as reader:
            try:
                conn.sendall(self.greeting + b"\r\n")
                if int(self.greeting[:3]) >= 400:
                    reader.read()
                    return
                for raw in reader:
                    line = raw.rstrip(b"\r\n").decode("utf-8", errors="replace")
                    self.commands.append(line)
                    verb = line.split(" ", 1)[0].upper()
                    if verb == "DATA" and not any(
                        line.startswith(p) for p in self.failures
                    ):
                        conn.sendall(b"354 go ahead\r\n")
                        collected = bytearray()
                        for data_line in reader:
                            if data_line.rstrip(b"\r\n") == b".":
                                break
                            collected += data_line
                        self.data = bytes(collected)
                        conn.sendall(b"250 queued\r\n")
                    elif verb == "QUIT":
                        conn.sendall(b"221 bye\r\n")
                        return
                    else:
                        self._reply(conn, line)
            except OSError:
                return

    def finish(self):
        self.thread.join(timeout=10)
        self.listener.close()


def make_message():
    message = Message("sender@example.com", "Hi", timestamp=0)
    message.add_to("to@example.com")
    message.add_cc("cc@example.com")
    message.add_bcc("bcc@example.com")
    message.set_body("Hello there")
    return message


def test_plain_auth_token_round_trip():
    password = "password"
    encoded = plain_auth_token("user", password)
    assert base64.b64decode(encoded) == b"\x00user\x00password"


def test_plain_auth_token_empty_credentials():
    assert plain_auth_token(None, None) == "AAA="


def test_send_success_command_sequence():
    server = FakeSmtpServer()
    send(make_message(), "127.0.0.1", server.port)
    server.finish()
    verbs = [c.split(" ", 1)[0] for c in server.commands]
    assert verbs == ["EHLO", "MAIL", "RCPT", "RCPT", "RCPT", "DATA", "QUIT"]
    assert server.commands[1] == "MAIL FROM:<sender@example.com>"
    assert server.commands[2:5] == [
        "RCPT TO:<to@example.com>",
        "RCPT TO:<cc@example.com>",
        "RCPT TO:<bcc@example.com>",
    ]


def test_send_transmits_message_data():
    server = FakeSmtpServer()
    send(make_message(), "127.0.0.1", server.port)
    server.finish()
    assert b"Subject: Hi\r\n" in server.data
    assert b"To: <to@example.com>" in server.data
    assert server.data.rstrip(b"\r\n").endswith(b"Hello there")
    assert b"bcc@example.com" not in server.data


def test_empty_recipients_are_skipped():
    message = Message("sender@example.com", "Hi", timestamp=0)
    message.add_to("")
    message.add_to(None)
    message.add_to("to@example.com")
    message.set_body("x")
    server = FakeSmtpServer()
    send(message, "127.0.0.1", server.port)
    server.finish()
    rcpts = [c for c in server.commands if c.startswith("RCPT")]
    assert rcpts == ["RCPT TO:<to@example.com>"]


def test_helo_used_when_ehlo_refused():
    server = FakeSmtpServer(failures={"EHLO": 502})
    send(make_message(), "127.0.0.1", server.port)
    server.finish()
    assert server.commands[0].startswith("EHLO ")
    assert server.commands[1].startswith("HELO ")
    assert "DATA" in server.commands


def test_ehlo_and_helo_refused():
    server = FakeSmtpServer(failures={"EHLO": 502, "HELO": 502})
    with pytest.raises(SendError) as excinfo:
        send(make_message(), "127.0.0.1", server.port)
    server.finish()
    assert str(excinfo.value) == "SMTP EHLO/HELO returned error"
    assert server.commands[-1] == "QUIT"


def test_greeting_error():
    server = FakeSmtpServer(greeting=b"554 go away")
    with pytest.raises(SendError) as excinfo:
        send(make_message(), "127.0.0.1", server.port)
    server.finish()
    assert str(excinfo.value) == "SMTP server returned an error on connection"
    assert server.commands == []


def test_authentication_sends_plain_token():
    password = "password"
    server = FakeSmtpServer()
    send(make_message(), "127.0.0.1", server.port, username="user", password=password)
    server.finish()
    auth_commands = [c for c in server.commands if c.startswith("AUTH PLAIN ")]
    assert len(auth_commands) == 1
    assert base64.b64decode(auth_commands[0].split(" ")[2]) == b"\x00user\x00password"


def test_authentication_with_password_only():
    password = "password"
    server = FakeSmtpServer()
    send(make_message(), "127.0.0.1", server.port, password=password)
    server.finish()
    auth_commands = [c for c in server.commands if c.startswith("AUTH PLAIN ")]
    assert base64.b64decode(auth_commands[0].split(" ")[2]) == b"\x00\x00password"


def test_no_authentication_without_credentials():
    server = FakeSmtpServer()
    send(make_message(), "127.0.0.1", server.port)
    server.finish()
    assert not any(c.startswith("AUTH") for c in server.commands)


def test_authentication_failure():
    password = "password"
    server = FakeSmtpServer(failures={"AUTH": 535})
    with pytest.raises(SendError) as excinfo:
        send(make_message(), "127.0.0.1", server.port, username="user", password=password)
    server.finish()
    assert str(excinfo.value) == "SMTP authentication failed"
    assert not any(c.startswith("MAIL") for c in server.commands)


def test_sender_refused():
    server = FakeSmtpServer(failures={"MAIL FROM": 550})
    with pytest.raises(SendError) as excinfo:
        send(make_message(), "127.0.0.1", server.port)
    server.finish()
    assert str(excinfo.value) == "SMTP server did not accept sender"


def test_cc_recipient_refused_stops_further_recipients():
    server = FakeSmtpServer(failures={"RCPT TO:<cc@example.com>": 550})
    with pytest.raises(SendError) as excinfo:
        send(make_message(), "127.0.0.1", server.port)
    server.finish()
    assert str(excinfo.value) == "SMTP server did not accept e-mail address (CC)"
    assert "RCPT TO:<bcc@example.com>" not in server.commands
    assert server.commands[-1] == "QUIT"


def test_bcc_recipient_refused():
    server = FakeSmtpServer(failures={"RCPT TO:<bcc@example.com>": 550})
    with pytest.raises(SendError) as excinfo:
        send(make_message(), "127.0.0.1", server.port)
    server.finish()
    assert str(excinfo.value) == "SMTP server did not accept e-mail address (BCC)"


def test_data_refused():
    server = FakeSmtpServer(failures={"DATA": 554})
    with pytest.raises(SendError) as excinfo:
        send(make_message(), "127.0.0.1", server.port)
    server.finish()
    assert str(excinfo.value) == "SMTP DATA returned error"


def test_debug_log_records_conversation():
    server = FakeSmtpServer(ehlo_multiline=False)
    log = io.StringIO()
    send(make_message(), "127.0.0.1", server.port, debug_log=log)
    server.finish()
    text = log.getvalue()
    assert "SMTP> MAIL FROM:<sender@example.com>\n" in text
    assert "SMTP< 221 bye\n" in text
    assert "SMTP> DATA\n" in text


def _closed_port():
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    return port


def test_connection_refused():
    with pytest.raises(SendError) as excinfo:
        send(make_message(), "127.0.0.1", _closed_port())
    assert str(excinfo.value) == "Error connecting to SMTP server"


def test_send_secure_connection_refused():
    with pytest.raises(SendError) as excinfo:
        send_secure(make_message(), "127.0.0.1", _closed_port())
    assert str(excinfo.value) == "Error connecting to SMTP server"


def test_send_secure_to_plain_server_fails_handshake():
    server = FakeSmtpServer()
    with pytest.raises(SendError) as excinfo:
        send_secure(make_message(), "127.0.0.1", server.port)
    server.finish()
    assert str(excinfo.value) == "Error establishing secure SMTP connection"