"""Caller-facing options for building operator, account and user tokens.

Every field defaults to ``None`` meaning "not set"; the builders turn unset
fields into the claim defaults (``-1`` for unlimited counters, ``issued_at``
of 0, ``not_before`` equal to ``issued_at``).
"""

import dataclasses
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Union, get_args, get_origin

from .claims import Export
from .types import MalformedInput


class _Options:
    """from_dict support for option records.

    Nested records are listed in ``_nested`` (single) and ``_nested_lists``
    (lists). Unknown keys are rejected so typos do not silently fall back to
    defaults, and list fields must be given as lists. Instances go through the
    same conversion, so nested mappings on them become records too.
    """

    _nested: ClassVar[Dict[str, Any]] = {}
    _nested_lists: ClassVar[Dict[str, Any]] = {}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]], path: str = ""):
        if data is None:
            return None
        if isinstance(data, cls):
            data = {f.name: getattr(data, f.name) for f in dataclasses.fields(cls)}
        elif not isinstance(data, Mapping):
            raise MalformedInput("expected a mapping", field=path or None)

        fields = {f.name: f for f in dataclasses.fields(cls)}
        kwargs = {}
        for key, value in data.items():
            field_path = f"{path}.{key}" if path else key
            if key not in fields:
                raise MalformedInput(f"unknown option {key!r}", field=field_path)
            if value is not None and key in cls._nested:
                value = _convert(cls._nested[key], value, field_path)
            elif value is not None and _is_list_type(fields[key].type):
                if not isinstance(value, (list, tuple)):
                    raise MalformedInput(f"expected a list, got {type(value).__name__}", field=field_path)
                if key in cls._nested_lists:
                    value = [_convert(cls._nested_lists[key], v, f"{field_path}[{i}]") for i, v in enumerate(value)]
                else:
                    value = list(value)
            kwargs[key] = value
        return cls(**kwargs)


def _is_list_type(tp) -> bool:
    if get_origin(tp) is Union:
        return any(_is_list_type(arg) for arg in get_args(tp))
    return get_origin(tp) is list


def _convert(target, value, path):
    if target is Export:
        if isinstance(value, Export):
            return value
        try:
            return Export.from_dict(value)
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedInput(f"invalid export: {e}", field=path) from e
    return target.from_dict(value, path)


@dataclass
class NatsLimitsOptions(_Options):
    subs: Optional[int] = None
    data: Optional[int] = None
    payload: Optional[int] = None


@dataclass
class AccountLimitsOptions(_Options):
    imports: Optional[int] = None
    exports: Optional[int] = None
    wildcard_exports: Optional[bool] = None
    disallow_bearer: Optional[bool] = None
    conn: Optional[int] = None
    leaf_node_conn: Optional[int] = None


@dataclass
class JetStreamLimitsOptions(_Options):
    """One JetStream limit block. Blocks without a tier apply globally."""

    tier: Optional[str] = None
    mem_storage: Optional[int] = None
    disk_storage: Optional[int] = None
    streams: Optional[int] = None
    consumer: Optional[int] = None
    max_ack_pending: Optional[int] = None
    mem_max_stream_bytes: Optional[int] = None
    disk_max_stream_bytes: Optional[int] = None
    max_bytes_required: Optional[bool] = None


@dataclass
class PermissionsOptions(_Options):
    pub_allow: Optional[List[str]] = None
    pub_deny: Optional[List[str]] = None
    sub_allow: Optional[List[str]] = None
    sub_deny: Optional[List[str]] = None


@dataclass
class UserPermissionsOptions(PermissionsOptions):
    resp_max_msgs: Optional[int] = None
    # Duration string such as "1m" or "5s".
    resp_ttl: Optional[str] = None


@dataclass
class TraceOptions(_Options):
    destination: Optional[str] = None
    sampling: Optional[int] = None


@dataclass
class TimeRangeOptions(_Options):
    start: Optional[str] = None
    end: Optional[str] = None


@dataclass
class _EntityOptions(_Options):
    issued_at: Optional[int] = None
    expires: Optional[int] = None
    not_before: Optional[int] = None
    tags: Optional[List[str]] = None


@dataclass
class OperatorOptions(_EntityOptions):
    signing_keys: Optional[List[str]] = None
    account_server_url: Optional[str] = None
    operator_service_urls: Optional[List[str]] = None
    system_account: Optional[str] = None
    strict_signing_key_usage: Optional[bool] = None


@dataclass
class AccountOptions(_EntityOptions):
    signing_keys: Optional[List[str]] = None
    description: Optional[str] = None
    info_url: Optional[str] = None
    nats_limits: Optional[NatsLimitsOptions] = None
    account_limits: Optional[AccountLimitsOptions] = None
    jetstream_limits: Optional[List[JetStreamLimitsOptions]] = None
    default_permissions: Optional[PermissionsOptions] = None
    trace: Optional[TraceOptions] = None
    exports: Optional[List[Export]] = None

    _nested: ClassVar[Dict[str, Any]] = {
        "nats_limits": NatsLimitsOptions,
        "account_limits": AccountLimitsOptions,
        "default_permissions": PermissionsOptions,
        "trace": TraceOptions,
    }
    _nested_lists: ClassVar[Dict[str, Any]] = {
        "jetstream_limits": JetStreamLimitsOptions,
        "exports": Export,
    }


@dataclass
class UserOptions(_EntityOptions):
    issuer_account: Optional[str] = None
    permissions: Optional[UserPermissionsOptions] = None
    limits: Optional[NatsLimitsOptions] = None
    bearer_token: Optional[bool] = None
    allowed_connection_types: Optional[List[str]] = None
    source_networks: Optional[List[str]] = None
    time_restrictions: Optional[List[TimeRangeOptions]] = None
    locale: Optional[str] = None

    _nested: ClassVar[Dict[str, Any]] = {
        "permissions": UserPermissionsOptions,
        "limits": NatsLimitsOptions,
    }
    _nested_lists: ClassVar[Dict[str, Any]] = {
        "time_restrictions": TimeRangeOptions,
    }
