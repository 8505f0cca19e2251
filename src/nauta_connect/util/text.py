from __future__ import annotations


def mask_value(value: str, keep: int = 2) -> str:
    """
    Mask a secret-ish value for logs: `be0d60f382c4` -> `be***c4`.
    """
    if not value:
        return ""
    if len(value) <= keep * 2:
        return "*" * len(value)
    return f"{value[:keep]}***{value[-keep:]}"
