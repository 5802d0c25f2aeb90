"""Hierarchical filesystem client for AList servers."""

from alist_remote._backend import Fs
from alist_remote._cache import DirCache, DirLister, ListedChild
from alist_remote._capabilities import Capability, CapabilitySet
from alist_remote._config import AListOptions, BackendConfig, RegistryConfig, RemoteProfile
from alist_remote._context import Context
from alist_remote._encoding import Encoding, NameEncoder, parse_encoding
from alist_remote._errors import (
    AlreadyExists,
    AuthenticationError,
    BackendUnavailable,
    Cancelled,
    CapabilityNotSupported,
    ConfigError,
    DirectoryNotEmpty,
    ErrorKind,
    FallbackRequired,
    InvalidPath,
    NotFound,
    PermissionDenied,
    RemoteStoreError,
    TransientError,
)
from alist_remote._models import DirectoryEntry, MetadataSource, ObjectRecord
from alist_remote._operations import copy_file, move_dir, move_file, purge_dir
from alist_remote._pacer import Pacer
from alist_remote._path import PathKey
from alist_remote._registry import Registry, builtin_factories
from alist_remote._types import DirID
from alist_remote.backends._alist import AListFs

__version__ = "0.1.0"

__all__ = [
    # Core
    "Fs",
    "AListFs",
    "Registry",
    "builtin_factories",
    "Context",
    # Transfers
    "copy_file",
    "move_file",
    "move_dir",
    "purge_dir",
    # Path & Models
    "PathKey",
    "DirID",
    "DirectoryEntry",
    "ObjectRecord",
    "MetadataSource",
    # Resolution & retry
    "DirCache",
    "DirLister",
    "ListedChild",
    "Pacer",
    # Encoding
    "Encoding",
    "NameEncoder",
    "parse_encoding",
    # Capabilities
    "Capability",
    "CapabilitySet",
    # Config
    "AListOptions",
    "BackendConfig",
    "RemoteProfile",
    "RegistryConfig",
    # Errors
    "ErrorKind",
    "RemoteStoreError",
    "TransientError",
    "NotFound",
    "AlreadyExists",
    "DirectoryNotEmpty",
    "PermissionDenied",
    "InvalidPath",
    "CapabilityNotSupported",
    "FallbackRequired",
    "BackendUnavailable",
    "AuthenticationError",
    "ConfigError",
    "Cancelled",
    # Version
    "__version__",
]
