from .cache import TTLCache
from .text import pluralize, camel_to_snake

__all__ = [
    "TTLCache",
    "pluralize",
    "camel_to_snake",
]
