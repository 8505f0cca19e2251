from .text import mask_value

__all__ = ["mask_value"]
