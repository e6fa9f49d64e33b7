# quickmail

A small library for building e-mail messages and sending them over SMTP.
It needs only the standard library.

A message has a sender address, an optional sender name, a subject, To,
Cc and Bcc recipients, and extra header lines. It carries one or more
bodies and any number of attachments. A message with several bodies is
sent as `multipart/alternative`. A message with attachments becomes
`multipart/mixed`, and each attachment is base64 encoded in lines of 72
characters.

## Building a message

```python
from quickmail.message import Message

msg = Message("alice@example.com", "Quarterly report", sender_name="Alice")
msg.add_to("bob@example.com")
msg.add_cc("carol@example.com")
msg.add_bcc("dave@example.com")
msg.add_header("X-Priority: 3")

msg.set_body("Hello Bob,\r\nthe report is attached.\r\n")
msg.add_body_memory(b"<p>Hello Bob, the report is attached.</p>", "text/html")

msg.add_attachment_file("/tmp/report.pdf", "application/pdf")
msg.add_attachment_memory("notes.txt", b"some notes", "text/plain")
```

`Message` takes an optional `timestamp` (seconds since the epoch). It
defaults to the current time. A timestamp of `0` leaves the `Date`
header out.

`set_body` replaces every body with one plain-text body. That body is
registered under the name `text/plain`, so `remove_body("text/plain")`
removes it again. Bodies added with `add_body_file`, `add_body_memory`
or `add_body_custom` are unnamed. `remove_attachment` removes an
attachment by its file name. Both removal methods raise `KeyError` when
nothing matches.

`bodies()` and `attachments()` list what the message holds.
`recipients()` returns every non-empty To, Cc and Bcc address, in that
order. `get_body()` returns the bytes of the first body, or `None` if
there is none or it cannot be opened.

Content can also come from your own source. `add_body_custom` and
`add_attachment_custom` take an opener: a callable that returns a
readable binary stream each time the message is generated. Without an
opener the content is empty. The building blocks live in
`quickmail.attachments`:

- `Attachment`
- `AttachmentList`
- `file_attachment`
- `memory_attachment`
- `custom_attachment`
- `base_name`

## Producing the message text

```python
from quickmail.mime import message_bytes, save_message

raw = message_bytes(msg)

with open("message.eml", "wb") as stream:
    written = save_message(msg, stream)
```

`iter_message_data` yields the same data in pieces as it is generated,
so large attachments are never held in memory all at once. A body or
attachment whose opener raises `OSError` is left out.

The MIME boundaries contain random digits. Pass a `random.Random`
instance as `rng` to any of these functions to make the output
repeatable.

`quickmail.mime` also provides these helpers:

- `encode_base64_lines`: base64 in CR LF-terminated lines of 72 characters.
- `format_date`: the `Date` header value, in local time.
- `randomize_zeros`

## Sending

```python
from quickmail.sender import SendError, send, send_secure

password = "password"
try:
    send(msg, "smtp.example.com", 25, username="alice", password=password)
except SendError as exc:
    print("sending failed:", exc)
```

`send` talks plain SMTP on port 25 by default:

1. It tries `EHLO` first and falls back to `HELO`.
2. It authenticates with `AUTH PLAIN` when a username or password is given. `plain_auth_token` builds the credentials.
3. It sends `MAIL FROM`, then a `RCPT TO` for each recipient, then the message data.
4. It always ends with `QUIT`.

`send_secure` does the same inside TLS, on port 465 by default. It does
not verify the server certificate.

Give a text stream as `debug_log` to record the commands and replies.
Every failure raises `SendError`, whose message names the step that
failed.

## Lower-level SMTP

`quickmail.smtp.SmtpConnection` wraps a single SMTP connection and is a
context manager:

- `connect` opens it.
- `command` sends a `%`-style command and returns the reply's status code. A code of 999 means no valid reply could be read.
- `receive_response` and `get_code` read multi-line replies.
- `data_waiting` polls for input.

Failures to resolve, connect or send raise `SmtpError`.

## What it does not do

This is a library only. It has no command-line program. It does not
read or receive mail, and it does not queue or retry messages that fail
to send.

## Version

```python
from quickmail.message import get_version

print(get_version())
```