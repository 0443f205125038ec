__all__ = ["keygen", "ephemeral", "signing", "sessions"]
