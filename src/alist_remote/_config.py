"""Configuration model: immutable data containers describing servers and remotes."""

from __future__ import annotations

import dataclasses
from typing import Any
from urllib.parse import urlsplit

from alist_remote._encoding import Encoding, parse_encoding
from alist_remote._errors import ConfigError
from alist_remote._pacer import DEFAULT_DECAY_CONSTANT, DEFAULT_MAX_SLEEP, DEFAULT_MIN_SLEEP


def normalize_api_url(api_url: str) -> tuple[str, str]:
    """Validate an AList URL and split it into ``(base_url, root_path)``.

    ``"https://host/dav/"`` becomes ``("https://host", "/dav")``.

    :raises ConfigError: If the URL is not an absolute http(s) URL.
    """
    if not api_url:
        raise ConfigError("api_url is required")
    parts = urlsplit(api_url.strip())
    if parts.scheme not in ("http", "https"):
        raise ConfigError(f"api_url must use http or https, got {parts.scheme!r}", path=api_url)
    if not parts.netloc or not parts.hostname:
        raise ConfigError("api_url must include a host", path=api_url)
    base = f"{parts.scheme}://{parts.netloc}"
    return base, parts.path.rstrip("/")


@dataclasses.dataclass(frozen=True)
class AListOptions:
    """Options of one AList server connection.

    :param api_url: Server URL, optionally with a path that prefixes ``root_path``.
    :param token: API token; validated against ``/api/me`` when set.
    :param username: Login name, used when no token is given.
    :param password: Login password.
    :param root_path: Directory on the server that acts as the filesystem root.
    :param encoding: Name encoding policy (flag, comma separated names or ``"None"``).
    :param min_sleep: Minimum backoff interval in seconds.
    :param max_sleep: Maximum backoff interval in seconds.
    :param decay_constant: Backoff decay constant.
    :param timeout: HTTP timeout of a single request in seconds.
    """

    api_url: str
    token: str = ""
    username: str = ""
    password: str = ""
    root_path: str = ""
    encoding: Encoding = Encoding.ALIST_DEFAULT
    min_sleep: float = DEFAULT_MIN_SLEEP
    max_sleep: float = DEFAULT_MAX_SLEEP
    decay_constant: int = DEFAULT_DECAY_CONSTANT
    timeout: float = 30.0

    @property
    def base_url(self) -> str:
        return normalize_api_url(self.api_url)[0]

    @property
    def remote_root(self) -> str:
        """Absolute server path of the filesystem root, ``"/"`` when unset."""
        url_root = normalize_api_url(self.api_url)[1]
        joined = "/".join(p for p in (url_root, self.root_path) if p.strip("/"))
        segments = [s for s in joined.split("/") if s]
        return "/" + "/".join(segments)

    def validate(self) -> None:
        """Check the URL, credentials and backoff bounds.

        :raises ConfigError: On the first invalid value.
        """
        normalize_api_url(self.api_url)
        if not self.token and not (self.username and self.password):
            raise ConfigError("Either token or username and password must be set", path=self.api_url)
        if self.min_sleep < 0 or self.max_sleep < self.min_sleep:
            raise ConfigError(f"Invalid backoff bounds: min_sleep={self.min_sleep} max_sleep={self.max_sleep}")
        if self.decay_constant < 0:
            raise ConfigError("decay_constant must be >= 0")
        if self.timeout <= 0:
            raise ConfigError("timeout must be positive")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AListOptions:
        """Construct from a plain dict (e.g. parsed TOML/JSON).

        :raises ConfigError: On unknown keys or values of the wrong type.
        """
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown AList options: {unknown}")
        if "api_url" not in data:
            raise ConfigError("api_url is required")
        values = dict(data)
        values["encoding"] = parse_encoding(values.get("encoding"))
        try:
            for key in ("min_sleep", "max_sleep", "timeout"):
                if key in values:
                    values[key] = float(values[key])
            if "decay_constant" in values:
                values["decay_constant"] = int(values["decay_constant"])
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid numeric option: {exc}") from exc
        for key in ("api_url", "token", "username", "password", "root_path"):
            if key in values:
                values[key] = str(values[key])
        return cls(**values)


@dataclasses.dataclass(frozen=True)
class BackendConfig:
    """Describes a server instance.

    :param type: Backend type identifier (e.g. ``"alist"``).
    :param options: Backend-specific configuration options.
    """

    type: str
    options: dict[str, object] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass(frozen=True)
class RemoteProfile:
    """Describes a named remote: a backend plus a root below its own root.

    :param backend: Name of the backend config to use.
    :param root: Directory prefix for all operations.
    """

    backend: str
    root: str = ""

    def backend_options(self, options: dict[str, Any]) -> dict[str, Any]:
        """Return a copy of ``options`` with ``root`` joined below its ``root_path``."""
        merged = dict(options)
        root = self.root.strip("/")
        if root:
            base = str(merged.get("root_path", "")).strip("/")
            merged["root_path"] = f"{base}/{root}" if base else root
        return merged


@dataclasses.dataclass(frozen=True)
class RegistryConfig:
    """Top-level configuration container.

    :param backends: Mapping of backend names to their configs.
    :param remotes: Mapping of remote names to their profiles.
    """

    backends: dict[str, BackendConfig] = dataclasses.field(default_factory=dict)
    remotes: dict[str, RemoteProfile] = dataclasses.field(default_factory=dict)

    def validate(self) -> None:
        """Validate that all remote profiles reference existing backends.

        :raises ConfigError: If a remote references a non-existent backend.
        """
        for remote_name, profile in self.remotes.items():
            if profile.backend not in self.backends:
                raise ConfigError(
                    f"Remote '{remote_name}' references unknown backend '{profile.backend}'. "
                    f"Available backends: {sorted(self.backends.keys())}"
                )

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> RegistryConfig:
        """Construct from a plain dict (e.g. parsed TOML/JSON).

        :param data: Dict with ``backends`` and ``remotes`` keys.
        """
        raw_backends = data.get("backends", {})
        raw_remotes = data.get("remotes", {})
        if not isinstance(raw_backends, dict) or not isinstance(raw_remotes, dict):
            msg = "Expected 'backends' and 'remotes' to be dicts"
            raise TypeError(msg)

        backends: dict[str, BackendConfig] = {}
        for name, cfg in raw_backends.items():
            if not isinstance(cfg, dict):
                msg = f"Backend config for '{name}' must be a dict"
                raise TypeError(msg)
            backends[str(name)] = BackendConfig(
                type=str(cfg["type"]),
                options=dict(cfg.get("options", {})),
            )

        remotes: dict[str, RemoteProfile] = {}
        for name, prof in raw_remotes.items():
            if not isinstance(prof, dict):
                msg = f"Remote profile for '{name}' must be a dict"
                raise TypeError(msg)
            remotes[str(name)] = RemoteProfile(
                backend=str(prof["backend"]),
                root=str(prof.get("root", "")),
            )

        return cls(backends=backends, remotes=remotes)
