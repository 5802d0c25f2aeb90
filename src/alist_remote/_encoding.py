"""Filename character-encoding policy.

Names are encoded one path segment at a time before they are sent to the
server and decoded when they come back. Characters the server (or the
filesystems behind it) cannot store are replaced by look-alike Unicode
characters. A literal look-alike in a local name is escaped with
:data:`QUOTE` so that ``decode(encode(name)) == name`` for every name.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable

from alist_remote._errors import ConfigError

log = logging.getLogger(__name__)

QUOTE = "\u201b"


class Encoding(enum.Flag):
    """Character classes to replace in names sent to the server."""

    NONE = 0
    ZERO = 1
    DOT = 2
    WIN = 4
    BACKSLASH = 8
    LEFT_SPACE = 16
    RIGHT_SPACE = 32
    LEFT_CRLFHTVT = 64
    RIGHT_CRLFHTVT = 128
    INVALID_UTF8 = 256

    BASE = ZERO | DOT
    ALIST_DEFAULT = (
        ZERO
        | DOT
        | WIN
        | BACKSLASH
        | LEFT_SPACE
        | RIGHT_SPACE
        | LEFT_CRLFHTVT
        | RIGHT_CRLFHTVT
        | INVALID_UTF8
    )


_NAMES: dict[str, Encoding] = {
    "none": Encoding.NONE,
    "base": Encoding.BASE,
    "zero": Encoding.ZERO,
    "dot": Encoding.DOT,
    "win": Encoding.WIN,
    "backslash": Encoding.BACKSLASH,
    "leftspace": Encoding.LEFT_SPACE,
    "rightspace": Encoding.RIGHT_SPACE,
    "leftcrlfhtvt": Encoding.LEFT_CRLFHTVT,
    "rightcrlfhtvt": Encoding.RIGHT_CRLFHTVT,
    "invalidutf8": Encoding.INVALID_UTF8,
}

# region: replacement tables

_ZERO = {"\0": "␀"}
_WIN = {
    "<": "＜",
    ">": "＞",
    ":": "：",
    '"': "＂",
    "|": "｜",
    "?": "？",
    "*": "＊",
}
_BACKSLASH = {"\\": "＼"}
_SPACE = {" ": "␠"}
_CRLFHTVT = {"\t": "␉", "\n": "␊", "\v": "␋", "\r": "␍"}
_FULLWIDTH_DOT = "．"

# surrogateescape'd bytes 0x80-0xFF map onto a private use block
_SURROGATE_LOW, _SURROGATE_HIGH = 0xDC80, 0xDCFF
_PRIVATE_OFFSET = 0xEE80 - _SURROGATE_LOW

# endregion


def parse_encoding(value: Encoding | str | Iterable[str] | None) -> Encoding:
    """Parse an encoding policy from config.

    Accepts an :class:`Encoding`, a comma separated string such as
    ``"Win,BackSlash,InvalidUtf8"``, a list of names, ``"None"`` or ``None``
    (the AList default).

    :raises ConfigError: On an unknown name.
    """
    if value is None:
        return Encoding.ALIST_DEFAULT
    if isinstance(value, Encoding):
        return value
    names = value.split(",") if isinstance(value, str) else list(value)
    result = Encoding.NONE
    for raw in names:
        key = str(raw).strip().replace("_", "").lower()
        if not key:
            continue
        if key == "slash":
            # path segments never contain "/"
            log.debug("Ignoring 'Slash' encoding flag")
            continue
        if key not in _NAMES:
            raise ConfigError(f"Unknown encoding name {raw!r}. Known names: {sorted(_NAMES)}")
        result |= _NAMES[key]
    return result


class NameEncoder:
    """Encode and decode single path segments under an :class:`Encoding` policy.

    :param encoding: The policy to apply.
    """

    def __init__(self, encoding: Encoding = Encoding.ALIST_DEFAULT) -> None:
        self.encoding = encoding
        self._anywhere: dict[str, str] = {}
        if Encoding.ZERO in encoding:
            self._anywhere.update(_ZERO)
        if Encoding.WIN in encoding:
            self._anywhere.update(_WIN)
        if Encoding.BACKSLASH in encoding:
            self._anywhere.update(_BACKSLASH)
        self._left: dict[str, str] = {}
        self._right: dict[str, str] = {}
        if Encoding.LEFT_SPACE in encoding:
            self._left.update(_SPACE)
        if Encoding.RIGHT_SPACE in encoding:
            self._right.update(_SPACE)
        if Encoding.LEFT_CRLFHTVT in encoding:
            self._left.update(_CRLFHTVT)
        if Encoding.RIGHT_CRLFHTVT in encoding:
            self._right.update(_CRLFHTVT)
        self._anywhere_rev = {v: k for k, v in self._anywhere.items()}
        self._left_rev = {v: k for k, v in self._left.items()}
        self._right_rev = {v: k for k, v in self._right.items()}
        self._invalid_utf8 = Encoding.INVALID_UTF8 in encoding
        self._dot = Encoding.DOT in encoding

        replacements = set(self._anywhere_rev) | set(self._left_rev) | set(self._right_rev)
        if self._dot:
            replacements.add(_FULLWIDTH_DOT)
        self._replacements = frozenset(replacements)

    def __repr__(self) -> str:
        return f"NameEncoder({self.encoding!r})"

    def _is_replacement(self, c: str) -> bool:
        if c in self._replacements:
            return True
        return self._invalid_utf8 and 0xEE80 <= ord(c) <= 0xEEFF

    def _decodes_at(self, c: str, i: int, n: int) -> bool:
        """Return ``True`` if :meth:`to_standard_name` would translate ``c`` at index ``i``."""
        if c in self._anywhere_rev:
            return True
        if self._invalid_utf8 and 0xEE80 <= ord(c) <= 0xEEFF:
            return True
        if i == 0 and c in self._left_rev:
            return True
        return i == n - 1 and c in self._right_rev

    def from_standard_name(self, name: str) -> str:
        """Encode a display name into the form stored on the server."""
        if not self.encoding or not name:
            return name
        if self._dot:
            if name in (".", ".."):
                return _FULLWIDTH_DOT * len(name)
            if name in (_FULLWIDTH_DOT, _FULLWIDTH_DOT * 2):
                return QUOTE + name

        n = len(name)
        tokens: list[str] = []
        for i, c in enumerate(name):
            if c == QUOTE:
                tokens.append(QUOTE)
            elif c in self._anywhere:
                tokens.append(self._anywhere[c])
            elif self._invalid_utf8 and _SURROGATE_LOW <= ord(c) <= _SURROGATE_HIGH:
                tokens.append(chr(ord(c) + _PRIVATE_OFFSET))
            elif i == 0 and c in self._left:
                tokens.append(self._left[c])
            elif i == n - 1 and c in self._right:
                tokens.append(self._right[c])
            elif self._decodes_at(c, i, n):
                tokens.append(QUOTE + c)
            else:
                tokens.append(c)

        # A literal quote is doubled when the decoder would otherwise read it
        # as an escape for the character that follows.
        for i in range(len(tokens) - 1):
            if name[i] == QUOTE:
                following = tokens[i + 1][0]
                if following == QUOTE or self._is_replacement(following):
                    tokens[i] = QUOTE + QUOTE
        return "".join(tokens)

    def to_standard_name(self, name: str) -> str:
        """Decode a name received from the server into its display form."""
        if not self.encoding or not name:
            return name
        if self._dot and name in (_FULLWIDTH_DOT, _FULLWIDTH_DOT * 2):
            return "." * len(name)

        n = len(name)
        out: list[str] = []
        i = 0
        while i < n:
            c = name[i]
            if c == QUOTE and i + 1 < n:
                nxt = name[i + 1]
                if nxt == QUOTE or self._is_replacement(nxt):
                    out.append(nxt)
                    i += 2
                    continue
            if c in self._anywhere_rev:
                out.append(self._anywhere_rev[c])
            elif self._invalid_utf8 and 0xEE80 <= ord(c) <= 0xEEFF:
                out.append(chr(ord(c) - _PRIVATE_OFFSET))
            elif i == 0 and c in self._left_rev:
                out.append(self._left_rev[c])
            elif i == n - 1 and c in self._right_rev:
                out.append(self._right_rev[c])
            else:
                out.append(c)
            i += 1
        return "".join(out)

    def encode_path(self, path: str) -> str:
        """Encode every segment of a slash-separated path."""
        return "/".join(self.from_standard_name(seg) for seg in path.split("/"))

    def decode_path(self, path: str) -> str:
        """Decode every segment of a slash-separated path."""
        return "/".join(self.to_standard_name(seg) for seg in path.split("/"))
