"""Operation identities and placeholder tokens.

Every operation is addressed as ``"<model>:<token>"``. For existing records
the token is the real id; records created by the plan get ``temp_<n>``
tokens that the executor later maps to the id returned by the store.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping, Sequence
from typing import Final

from statepilot.domain.values import is_record_id

PLACEHOLDER_PREFIX: Final[str] = "temp_"
DRY_RUN_PREFIX: Final[str] = "dry-run"

_PLACEHOLDER_RE: Final = re.compile(rf"^(?P<model>[^:\s]+):{PLACEHOLDER_PREFIX}(?P<seq>\d+)$")
_RECORD_KEY_RE: Final = re.compile(r"^(?P<model>[^:\s]+):(?P<token>\S+)$")


def make_placeholder(model: str, sequence: int) -> str:
    return f"{model}:{PLACEHOLDER_PREFIX}{sequence}"


def record_key(model: str, record_id: int) -> str:
    return f"{model}:{record_id}"


def dry_run_id(token: str) -> str:
    return f"{DRY_RUN_PREFIX}:{token}"


def is_placeholder(value: object) -> bool:
    return isinstance(value, str) and _PLACEHOLDER_RE.match(value) is not None


def placeholder_model(token: str) -> str:
    match = _PLACEHOLDER_RE.match(token)
    if match is None:
        raise ValueError(f"Not a placeholder token: {token!r}")
    return match.group("model")


def split_operation_id(operation_id: str) -> tuple[str, str]:
    """Return ``(model, token)`` for an operation id."""

    match = _RECORD_KEY_RE.match(operation_id)
    if match is None:
        raise ValueError(f"Operation id must look like '<model>:<token>', got {operation_id!r}")
    return match.group("model"), match.group("token")


def real_id_of(operation_id: str) -> int:
    """Return the numeric record id encoded in an update/delete operation id."""

    _, token = split_operation_id(operation_id)
    try:
        return int(token)
    except ValueError as exc:
        raise ValueError(f"Operation id {operation_id!r} does not carry a record id") from exc


def iter_placeholders(value: object) -> Iterator[str]:
    """Yield every placeholder token found in ``value``, recursing into containers."""

    if isinstance(value, str):
        if is_placeholder(value):
            yield value
        return
    if isinstance(value, Mapping):
        for item in value.values():
            yield from iter_placeholders(item)
        return
    if isinstance(value, Sequence) and not isinstance(value, bytes):
        for item in value:
            yield from iter_placeholders(item)


def substitute(value: object, mapping: Mapping[str, object]) -> object:
    """Return ``value`` with every placeholder present in ``mapping`` replaced."""

    if isinstance(value, str):
        return mapping.get(value, value) if is_placeholder(value) else value
    if isinstance(value, Mapping):
        return {key: substitute(item, mapping) for key, item in value.items()}
    if isinstance(value, tuple):
        return tuple(substitute(item, mapping) for item in value)
    if isinstance(value, list):
        return [substitute(item, mapping) for item in value]
    return value


def iter_plain_ids(value: object) -> Iterator[int]:
    if is_record_id(value):
        yield value  # type: ignore[misc]
        return
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        for item in value:
            if is_record_id(item):
                yield item
