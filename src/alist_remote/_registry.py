"""Registry: builds and owns the filesystems named in a configuration."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING

from alist_remote._config import RegistryConfig
from alist_remote._errors import ConfigError

if TYPE_CHECKING:
    from types import TracebackType

    from alist_remote._backend import Fs

FsFactory = Callable[..., "Fs"]


def builtin_factories() -> dict[str, FsFactory]:
    """Return a fresh factory map of the built-in backend types."""
    from alist_remote.backends._alist import AListFs

    return {"alist": AListFs}


class Registry:
    """Lazily instantiates one filesystem per configured remote.

    The factory map is owned by the registry; pass a custom one to add
    backend types or to inject test doubles.

    :param config: Optional configuration. Validates immediately.
    :param factories: Maps backend type names to callables taking the
        backend options as keywords. Defaults to :func:`builtin_factories`.
    :raises ConfigError: If config is invalid.
    """

    def __init__(
        self,
        config: RegistryConfig | None = None,
        factories: Mapping[str, FsFactory] | None = None,
    ) -> None:
        self._config = config or RegistryConfig()
        self._config.validate()
        self._factories = dict(factories) if factories is not None else builtin_factories()
        self._filesystems: dict[str, Fs] = {}

    def __repr__(self) -> str:
        remotes = sorted(self._config.remotes.keys())
        return f"Registry(remotes={remotes!r})"

    @property
    def backend_types(self) -> list[str]:
        return sorted(self._factories)

    def get_fs(self, name: str) -> Fs:
        """Get the filesystem of a remote profile, creating it on first use.

        :param name: The remote profile name.
        :raises KeyError: If no remote profile with this name exists.
        :raises ConfigError: If the backend type or its options are invalid.
        """
        if name not in self._config.remotes:
            available = sorted(self._config.remotes.keys())
            raise KeyError(f"Unknown remote '{name}'. Available remotes: {available}")
        if name not in self._filesystems:
            self._filesystems[name] = self._create(name)
        return self._filesystems[name]

    def _create(self, remote: str) -> Fs:
        profile = self._config.remotes[remote]
        cfg = self._config.backends[profile.backend]
        if cfg.type not in self._factories:
            raise ConfigError(f"Unknown backend type '{cfg.type}'. Registered types: {self.backend_types}")
        options = profile.backend_options(cfg.options)
        try:
            return self._factories[cfg.type](**options)
        except TypeError as exc:
            raise ConfigError(
                f"Invalid options for backend '{profile.backend}' (type={cfg.type!r}): {exc}. "
                f"Provided options: {sorted(cfg.options.keys())}"
            ) from exc

    def close(self) -> None:
        """Close all instantiated filesystems."""
        for fs in self._filesystems.values():
            fs.close()
        self._filesystems.clear()

    def __enter__(self) -> Registry:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
