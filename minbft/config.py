"""Consensus configuration read from YAML, JSON or TOML files."""

from __future__ import annotations

import json
import re
import tomllib
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from fractions import Fraction
from pathlib import Path
from typing import Any

import yaml

_UINT32_MAX = 2**32 - 1
_INT64_MAX = 2**63 - 1
_SUPPORTED_EXTS = ("json", "toml", "yaml", "yml")

_UNITS = {
    "ns": 1,
    "us": 10**3,
    "\u00b5s": 10**3,
    "\u03bcs": 10**3,
    "ms": 10**6,
    "s": 10**9,
    "m": 60 * 10**9,
    "h": 3600 * 10**9,
}
_COMPONENT = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|\u00b5s|\u03bcs|ms|s|m|h)")
_UNIT_CHARS = set("nsu\u00b5m\u03bch")


class ConfigError(Exception):
    """The configuration could not be read or holds an invalid value."""


@dataclass(frozen=True)
class Peer:
    """An entry in the list of peers."""

    id: int = 0
    addr: str = ""


def _ns_to_timedelta(ns: int) -> timedelta:
    seconds, rem = divmod(ns, 10**9)
    return timedelta(seconds=seconds, microseconds=rem // 1000)


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "300ms", "-1.5h" or "2h45m"."""
    s = text
    negative = False
    if s and s[0] in "+-":
        negative = s[0] == "-"
        s = s[1:]
    if s == "0":
        return timedelta(0)
    if not s:
        raise ValueError(f'time: invalid duration "{text}"')

    total = Fraction(0)
    pos = 0
    while pos < len(s):
        match = _COMPONENT.match(s, pos)
        if match is None:
            raise ValueError(f'time: invalid duration "{text}"')
        total += Fraction(Decimal(match.group(1))) * _UNITS[match.group(2)]
        pos = match.end()

    ns = int(total)
    if ns > _INT64_MAX:
        raise ValueError(f'time: invalid duration "{text}"')
    return _ns_to_timedelta(-ns if negative else ns)


def _normalize_key(key: Any) -> str:
    if isinstance(key, bool):
        return "true" if key else "false"
    return str(key).lower()


def _normalize(value: Any) -> Any:
    if isinstance(value, dict):
        return {_normalize_key(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_normalize(v) for v in value]
    return value


def _parse(data: bytes | str, cfg_type: str) -> dict:
    kind = cfg_type.lower()
    if kind not in _SUPPORTED_EXTS:
        raise ConfigError(f'Unsupported Config Type "{cfg_type}"')
    text = data.decode("utf-8") if isinstance(data, bytes) else data
    try:
        if kind == "json":
            doc = json.loads(text) if text.strip() else {}
        elif kind == "toml":
            doc = tomllib.loads(text)
        else:
            doc = yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigError(f"failed to parse {kind} configuration: {exc}") from exc
    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        raise ConfigError("configuration root must be a mapping")
    return _normalize(doc)


def _to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, (bool, int)):
        return int(value)
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip(), 0)
        except ValueError:
            return 0
    return 0


def _to_duration(value: Any) -> timedelta:
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool) or value is None:
        return timedelta(0)
    if isinstance(value, (int, float)):
        return _ns_to_timedelta(int(value))
    if isinstance(value, str):
        text = value if _UNIT_CHARS & set(value) else value + "ns"
        try:
            return parse_duration(text)
        except ValueError:
            return timedelta(0)
    return timedelta(0)


def _split_name(filename: str) -> tuple[str, str]:
    dot = filename.rfind(".")
    ext = filename[dot:] if dot >= 0 else ""
    return filename[: len(filename) - len(ext)], ext


class Config:
    """Protocol parameters and peer list of a consensus network."""

    def __init__(self) -> None:
        self._data: dict | None = None

    def load_config(self, file_path: str | Path) -> None:
        """Load the file, whose extension names the format to parse it with.

        The file is looked for in its own directory, then in the current one.
        """
        directory, filename = str(Path(file_path).parent), Path(file_path).name
        if str(file_path).endswith(("/", "\\")):
            filename = ""
        name, ext = _split_name(filename)
        if len(ext) < 2 or not name:
            raise ConfigError(
                "Invalid config file name (should specify file extension for parsing).")

        search = [Path(directory or "."), Path(".")]
        for folder in search:
            for candidate_ext in _SUPPORTED_EXTS:
                candidate = folder / f"{name}.{candidate_ext}"
                if candidate.is_file():
                    try:
                        data = candidate.read_bytes()
                    except OSError as exc:
                        raise ConfigError(f"Failed to parse config file: {exc}") from exc
                    try:
                        self._data = _parse(data, ext[1:])
                    except ConfigError as exc:
                        raise ConfigError(f"Failed to parse config file: {exc}") from exc
                    return
        folders = ", ".join(str(f) for f in search)
        raise ConfigError(
            f'Failed to parse config file: Config File "{name}" Not Found in [{folders}]')

    def read_config(self, stream, cfg_type: str) -> None:
        """Read configuration of the given type ("yaml", "json", "toml") from a stream."""
        self._data = _parse(stream.read(), cfg_type)

    def is_initialized(self) -> bool:
        """Return True once a configuration has been read."""
        return self._data is not None

    def _get(self, key: str) -> Any:
        if self._data is None:
            raise ConfigError("configuration is not loaded")
        node: Any = self._data
        for part in key.lower().split("."):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def _uint32(self, key: str) -> int:
        value = _to_int(self._get(key))
        if value < 0 or value > _UINT32_MAX:
            raise ConfigError(f"integer overflow: {key}")
        return value

    def n(self) -> int:
        """Total number of replicas."""
        return self._uint32("protocol.n")

    def f(self) -> int:
        """Number of tolerated faulty replicas."""
        return self._uint32("protocol.f")

    def checkpoint_period(self) -> int:
        """Checkpoint period."""
        return self._uint32("protocol.checkpointPeriod")

    def logsize(self) -> int:
        """Maximum size of the log."""
        return self._uint32("protocol.logsize")

    def timeout_request(self) -> timedelta:
        """Per-request timeout before a view change."""
        return _to_duration(self._get("protocol.timeout.request"))

    def timeout_viewchange(self) -> timedelta:
        """Timeout to receive a NEW-VIEW message."""
        return _to_duration(self._get("protocol.timeout.viewchange"))

    def peers(self) -> list[Peer]:
        """Return the list of peers."""
        raw = self._get("peers")
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise ConfigError("Failed to unmarshal peers: expected a list")
        peers = []
        for entry in raw:
            if not isinstance(entry, dict):
                raise ConfigError("Failed to unmarshal peers: expected a mapping per peer")
            peer_id = entry.get("id", 0)
            addr = entry.get("addr", "")
            if isinstance(peer_id, bool) or not isinstance(peer_id, int):
                raise ConfigError(f"Failed to unmarshal peers: invalid id {peer_id!r}")
            if not isinstance(addr, str):
                raise ConfigError(f"Failed to unmarshal peers: invalid addr {addr!r}")
            peers.append(Peer(peer_id, addr))
        return peers