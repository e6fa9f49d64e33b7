"""Compose MIME e-mail messages with bodies and attachments and send them over SMTP."""

__version__ = "0.1.25"

__all__ = ["attachments", "message", "mime", "sender", "smtp"]