#!/usr/bin/env python3
"""Validation and default resolution for replica/client experiment settings.

Settings arrive as plain mappings, either camelCase (experiment descriptions
written for the JS tooling) or snake_case (hand-written YAML). Every optional
field is listed once in OPTIONAL_SETTINGS with its candidate keys in
precedence order and the literal default used when none of them is set.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Tuple


class SettingsError(ValueError):
    pass


_UNSET = object()

# name -> (candidate keys, default); _UNSET means "leave the field out"
OPTIONAL_SETTINGS: Dict[str, Tuple[Tuple[str, ...], Any]] = {
    "reliable_sender_cache": (("reliableSenderCache", "reliable_sender_cache"), False),
    "batch_min_delay": (("batchMinDelay", "batch_min_delay"), {"secs": 0, "nanos": 0}),
    "checkpoint_interval": (("checkpointInterval", "checkpoint_interval"), 1200),
    "authentication_clients": (("authenticationClients", "authentication_clients"), "Blake3"),
    "bracha_authentication_peers": (("brachaAuthenticationPeers", "bracha_authentication_peers"), "Blake3"),
    "pbft_authentication_peers": (("pbftAuthenticationPeers", "pbft_authentication_peers"), "Ed25519"),
    "enable_response_store": (("enableResponseStore", "enable_response_store"), True),
    "max_parallel_requests_per_client": (
        ("maxParallelRequestsPerClient", "max_parallel_requests_per_client"),
        _UNSET,
    ),
    "request_timeout": (("requestTimeout", "request_timeout"), _UNSET),
    "bracha_hashed_batching": (("brachaHashedBatching", "bracha_hashed_batching"), _UNSET),
    "bracha_hashed_batch_size": (("brachaHashedBatchSize", "bracha_hashed_batch_size"), _UNSET),
    "bracha_hashed_batch_timeout_ms": (
        ("brachaHashedBatchTimeoutMs", "bracha_hashed_batch_timeout_ms"),
        _UNSET,
    ),
    "rust_log": (("rustLog", "rust_log"), _UNSET),
    "start_time": (("startTime", "start_time"), 0),
    "response_strategy": (("responseStrategy", "response_strategy"), _UNSET),
}

DEFAULT_LOG_LEVEL = "info"


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, dict, list)) and not value:
        return True
    return False


def is_set(value: Any) -> bool:
    return value is not _UNSET


def resolve(settings: Mapping[str, Any], name: str) -> Any:
    """Return the first non-empty candidate value for `name`, or its default.

    Fields without a literal default resolve to a sentinel; check with
    is_set() or use resolve_optional().
    """
    return _lookup(settings, name)[1]


def _lookup(settings: Mapping[str, Any], name: str) -> Tuple[Optional[str], Any]:
    keys, default = OPTIONAL_SETTINGS[name]
    for key in keys:
        value = settings.get(key)
        if not _is_empty(value):
            return key, value
    return None, default


def resolve_optional(settings: Mapping[str, Any], name: str) -> Optional[Any]:
    value = resolve(settings, name)
    return value if is_set(value) else None


def resolve_duration(value: Mapping[str, Any], field: str = "duration") -> Dict[str, int]:
    if not isinstance(value, Mapping):
        raise SettingsError(f"{field} must be a mapping with secs and nanos, got {value!r}")
    secs = value.get("secs", 0)
    nanos = value.get("nanos", value.get("nano", 0))
    if any(isinstance(part, (bool, float)) for part in (secs, nanos)):
        raise SettingsError(f"{field} must hold integer secs/nanos, got {dict(value)!r}")
    try:
        return {"secs": int(secs if secs is not None else 0), "nanos": int(nanos if nanos is not None else 0)}
    except (TypeError, ValueError):
        raise SettingsError(f"{field} must hold integer secs/nanos, got {dict(value)!r}") from None


def resolve_log_levels(replica: Mapping[str, Any], client: Mapping[str, Any]) -> Tuple[str, str]:
    # The client inherits the replica level unless it sets its own.
    replica_level = resolve_optional(replica, "rust_log") or DEFAULT_LOG_LEVEL
    client_level = resolve_optional(client, "rust_log") or replica_level
    return str(replica_level), str(client_level)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _require_int(settings: Mapping[str, Any], key: str, owner: str) -> int:
    value = settings.get(key)
    if _is_empty(value):
        raise SettingsError(f"{key} property of {owner} object of current experiment was not defined")
    if not _is_int(value):
        raise SettingsError(f"{key} property of {owner} object must be an Integer, got {value!r}")
    return value


_OPTIONAL_CHECKS = {
    "replica": {
        "checkpoint_interval": "Integer",
        "request_timeout": "Integer",
        "max_parallel_requests_per_client": "Integer",
        "bracha_hashed_batch_size": "Integer",
        "bracha_hashed_batch_timeout_ms": "Integer",
        "reliable_sender_cache": "Boolean",
        "enable_response_store": "Boolean",
        "bracha_hashed_batching": "Boolean",
        "batch_min_delay": "Duration",
    },
    "client": {
        "start_time": "Integer",
    },
}


def _check_optional(settings: Mapping[str, Any], owner: str) -> None:
    for name, kind in _OPTIONAL_CHECKS[owner].items():
        key, value = _lookup(settings, name)
        if key is None:
            continue
        if kind == "Duration":
            resolve_duration(value, key)
        elif kind == "Integer" and not _is_int(value):
            raise SettingsError(f"{key} property of {owner} object must be an Integer, got {value!r}")
        elif kind == "Boolean" and not isinstance(value, bool):
            raise SettingsError(f"{key} property of {owner} object must be a Boolean, got {value!r}")


def validate_settings(replica: Optional[Mapping[str, Any]], client: Optional[Mapping[str, Any]]) -> None:
    """Fail on the first missing or mistyped field; return None otherwise."""
    if _is_empty(replica) or not isinstance(replica, Mapping):
        raise SettingsError("replica object of current experiment was not defined")
    if _is_empty(client) or not isinstance(client, Mapping):
        raise SettingsError("client object of current experiment was not defined")

    replicas = _require_int(replica, "replicas", "replica")
    if replicas < 1:
        raise SettingsError(f"replicas property of replica object must be at least 1, got {replicas}")
    min_batch = _require_int(replica, "minBatchSize", "replica")
    max_batch = _require_int(replica, "maxBatchSize", "replica")
    if min_batch > max_batch:
        raise SettingsError(f"minBatchSize ({min_batch}) must not exceed maxBatchSize ({max_batch})")
    _require_int(replica, "replySize", "replica")

    batch_replies = replica.get("batchReplies")
    if batch_replies is None:
        raise SettingsError("batchReplies property of replica object of current experiment was not defined")
    if not isinstance(batch_replies, bool):
        raise SettingsError(f"batchReplies property of replica object must be a Boolean, got {batch_replies!r}")

    timeout = replica.get("batchTimeout")
    if _is_empty(timeout):
        raise SettingsError("batchTimeout property of replica object of current experiment was not defined")
    resolve_duration(timeout, "batchTimeout")
    _check_optional(replica, "replica")

    for key in ("clients", "concurrent", "payload", "duration"):
        _require_int(client, key, "client")
    if not is_set(resolve(client, "response_strategy")):
        raise SettingsError("response_strategy property of client object of current experiment was not defined")
    _check_optional(client, "client")
