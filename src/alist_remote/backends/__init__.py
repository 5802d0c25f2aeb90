"""Filesystem backends."""

from alist_remote.backends._alist import AListFs
from alist_remote.backends._alist_api import AListClient, ApiItem, ApiResponse
from alist_remote.backends._alist_resolver import MetadataResolver

__all__ = [
    "AListClient",
    "AListFs",
    "ApiItem",
    "ApiResponse",
    "MetadataResolver",
]
