"""Flatten hierarchical dataset names into a single destination segment.

cache/appdata -> cache_appdata

Every separator is replaced by SUBSTITUTE, so the mapping is only reversible
when SUBSTITUTE never occurs inside a dataset name. config.validate rejects
such names before any dataset is touched.
"""
from __future__ import annotations

from zrm.errors import ConfigError

SEPARATOR = "/"
SUBSTITUTE = "_"


def encode(name: str) -> str:
    return name.replace(SEPARATOR, SUBSTITUTE)


def decode(flat: str) -> str:
    return flat.replace(SUBSTITUTE, SEPARATOR)


def is_encodable(name: str) -> bool:
    """True if decode(encode(name)) == name."""
    return SUBSTITUTE not in name


def check_codec() -> None:
    """Fail if the substitution character could collide with the separator."""
    if len(SUBSTITUTE) != 1 or SUBSTITUTE == SEPARATOR or SUBSTITUTE.isspace():
        raise ConfigError(
            f"Invalid path substitution character {SUBSTITUTE!r}", field="codec"
        )
