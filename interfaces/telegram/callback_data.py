from __future__ import annotations

from typing import Optional, Tuple

# Telegram rejects inline buttons whose callback data exceeds 64 bytes.
MAX_CALLBACK_DATA = 64

PICK_PREFIX = "pick"
CANCEL_PREFIX = "cancel"


def _checked(data: str) -> str:
    if len(data.encode("utf-8")) > MAX_CALLBACK_DATA:
        raise ValueError(f"Callback data too long: {data}")
    return data


def encode_transfer_choice(key: str, value: str) -> str:
    """
    Encode a "pick this option" callback for a pending transfer.

    `key` names the prompt on the server side; the continuation token
    itself never travels in callback data.

    Format: pick:{value}:{key}
    """

    return _checked(f"{PICK_PREFIX}:{value}:{key}")


def encode_transfer_cancel(key: str) -> str:
    """
    Encode a decline callback for a pending transfer.

    Format: cancel:{key}
    """

    return _checked(f"{CANCEL_PREFIX}:{key}")


def parse_transfer_callback(data: str) -> Tuple[bool, Optional[str], str]:
    """Return (accepted, value, key) for a pick or cancel callback."""

    if data.startswith(PICK_PREFIX + ":"):
        parts = data.split(":")
        if len(parts) != 3 or not parts[1] or not parts[2]:
            raise ValueError(f"Invalid transfer choice callback data: {data}")
        return True, parts[1], parts[2]

    if data.startswith(CANCEL_PREFIX + ":"):
        key = data[len(CANCEL_PREFIX) + 1:]
        if not key or ":" in key:
            raise ValueError(f"Invalid transfer cancel callback data: {data}")
        return False, None, key

    raise ValueError(f"Invalid transfer callback data: {data}")
