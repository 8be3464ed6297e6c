"""Encoding of typed values and store snapshots for tablestore."""

import dataclasses
import enum
import logging
import types
import typing
import warnings
from datetime import date, datetime
from typing import Any, Dict, Union

import msgpack

from .exceptions import DecodeError, EncodeError, TypeMismatchError

logger = logging.getLogger(__name__)

# MessagePack extension type codes
EXT_DATETIME = 1
EXT_DATE = 2

Namespace = Dict[str, Dict[str, bytes]]

_UNPACK_ERRORS = (ValueError, TypeError, msgpack.exceptions.UnpackException)


class Codec:
    """Convert typed values to opaque bytes and back.

    Values are packed with MessagePack. On the way out the caller names the
    type it expects and the decoded value is checked (and where needed
    rebuilt) against it, so reading a field as the wrong type raises
    TypeMismatchError instead of handing back a value of some other type.

    Encoding and decoding fail differently on purpose:
    - encode() raises EncodeError, a programming error that is not a
      StoreError. Any value the caller asks to store must be encodable.
    - decode() raises TypeMismatchError/DecodeError, ordinary recoverable
      errors caused by the type the caller asked for.

    Example:
        codec = Codec()

        data = codec.encode({"balance": 100})
        codec.decode(data, Dict[str, int])  # {'balance': 100}
        codec.decode(data, str)             # raises TypeMismatchError

    Supported values:
        None, bool, int, float, str, bytes, bytearray, list, tuple, set,
        frozenset, dict, datetime, date, Enum members and dataclass
        instances (nested freely).
    """

    def __init__(self, strict: bool = False, warn_extra_fields: bool = True):
        """Initialize the codec.

        Args:
            strict: If True, never widen int to float and reject stored
                keys a dataclass does not declare
            warn_extra_fields: If True and not strict, warn about stored
                keys a dataclass does not declare
        """
        self.strict = strict
        self.warn_extra_fields = warn_extra_fields

    # Values

    def encode(self, value: Any) -> bytes:
        """Serialize a value into bytes.

        Args:
            value: The value to encode

        Returns:
            MessagePack bytes

        Raises:
            EncodeError: If the value (or something nested in it) has a type
                the codec cannot represent
        """
        try:
            return msgpack.packb(value, use_bin_type=True, default=_encode_default)
        except (TypeError, ValueError, OverflowError) as e:
            logger.critical("Refusing to store unencodable %s: %s", type(value).__name__, e)
            raise EncodeError(f"Cannot encode {type(value).__name__}: {e}") from e

    def decode(self, data: bytes, type_: Any = Any) -> Any:
        """Deserialize bytes as the requested type.

        Args:
            data: Bytes produced by encode()
            type_: The type to read the value as. Any (or object) returns
                the value as it was stored.

        Returns:
            The decoded value, an instance of type_

        Raises:
            DecodeError: If data is not a valid encoding
            TypeMismatchError: If the value cannot be read as type_
        """
        try:
            value = msgpack.unpackb(
                data,
                raw=False,
                strict_map_key=False,
                ext_hook=_decode_ext,
                object_pairs_hook=_build_map,
            )
        except _UNPACK_ERRORS as e:
            raise DecodeError(f"Invalid value encoding: {e}") from e
        return self._coerce(value, type_, "$")

    # Snapshots

    def encode_namespace(self, namespace: Namespace) -> bytes:
        """Serialize a whole table namespace into snapshot bytes."""
        return self.encode(namespace)

    def decode_namespace(self, data: bytes) -> Namespace:
        """Rebuild a table namespace from snapshot bytes.

        Args:
            data: Bytes produced by encode_namespace()

        Returns:
            A fresh table -> field -> bytes mapping

        Raises:
            DecodeError: If data is not a valid snapshot
        """
        try:
            raw = msgpack.unpackb(data, raw=False)
        except _UNPACK_ERRORS as e:
            raise DecodeError(f"Could not decode snapshot: {e}") from e

        if not isinstance(raw, dict):
            raise DecodeError(
                f"Could not decode snapshot: expected a map of tables, got {type(raw).__name__}"
            )

        namespace: Namespace = {}
        for table, fields in raw.items():
            if not isinstance(table, str) or not isinstance(fields, dict):
                raise DecodeError(f"Could not decode snapshot: bad table entry {table!r}")
            for field, value in fields.items():
                if not isinstance(field, str) or not isinstance(value, bytes):
                    raise DecodeError(
                        f"Could not decode snapshot: bad field entry {table!r}/{field!r}"
                    )
            namespace[table] = dict(fields)
        return namespace

    # Type coercion

    def _coerce(self, value: Any, tp: Any, path: str) -> Any:
        if tp is Any or tp is object:
            return value
        if tp is None or tp is type(None):
            if value is None:
                return None
            raise _mismatch(tp, value, path)

        origin = typing.get_origin(tp)
        if origin is Union or origin is types.UnionType:
            for member in typing.get_args(tp):
                try:
                    return self._coerce(value, member, path)
                except TypeMismatchError:
                    continue
            raise _mismatch(tp, value, path)
        if origin is typing.Literal:
            for choice in typing.get_args(tp):
                if type(value) is type(choice) and value == choice:
                    return value
            raise _mismatch(tp, value, path)
        if origin is not None:
            return self._coerce_generic(value, tp, origin, path)

        if not isinstance(tp, type):
            raise TypeError(f"Cannot decode as {tp!r}: not a type")

        if dataclasses.is_dataclass(tp):
            return self._coerce_dataclass(value, tp, path)
        if issubclass(tp, enum.Enum):
            try:
                member = tp(value)
            except ValueError:
                raise _mismatch(tp, value, path, f"no {tp.__name__} member for {value!r}") from None
            # True == 1, so IntEnum(True) would otherwise succeed
            if type(value) is not type(member.value):
                raise _mismatch(tp, value, path, f"no {tp.__name__} member for {value!r}")
            return member
        if tp is bool:
            if isinstance(value, bool):
                return value
            raise _mismatch(tp, value, path)
        if tp is int:
            if isinstance(value, int) and not isinstance(value, bool):
                return value
            raise _mismatch(tp, value, path)
        if tp is float:
            if isinstance(value, float):
                return value
            if not self.strict and isinstance(value, int) and not isinstance(value, bool):
                return float(value)
            raise _mismatch(tp, value, path)
        if tp is bytearray:
            if isinstance(value, bytes):
                return bytearray(value)
            raise _mismatch(tp, value, path)
        if tp in (list, tuple, set, frozenset):
            if isinstance(value, (list, tuple)):
                return self._collect(tp, value, path)
            raise _mismatch(tp, value, path)
        if tp is date:
            if isinstance(value, date) and not isinstance(value, datetime):
                return value
            raise _mismatch(tp, value, path)
        if isinstance(value, tp):
            return value
        raise _mismatch(tp, value, path)

    def _coerce_generic(self, value: Any, tp: Any, origin: Any, path: str) -> Any:
        args = typing.get_args(tp)

        if origin in (list, set, frozenset):
            if not isinstance(value, (list, tuple)):
                raise _mismatch(tp, value, path)
            item_tp = args[0] if args else Any
            items = [self._coerce(v, item_tp, f"{path}[{i}]") for i, v in enumerate(value)]
            return self._collect(origin, items, path)

        if origin is tuple:
            if not isinstance(value, (list, tuple)):
                raise _mismatch(tp, value, path)
            if not args:
                return tuple(value)
            if len(args) == 2 and args[1] is Ellipsis:
                item_tps = [args[0]] * len(value)
            elif args == ((),):
                item_tps = []
            else:
                item_tps = list(args)
            if len(item_tps) != len(value):
                raise _mismatch(
                    tp, value, path, f"expected {len(item_tps)} items, got {len(value)}"
                )
            return tuple(
                self._coerce(v, t, f"{path}[{i}]")
                for i, (v, t) in enumerate(zip(value, item_tps))
            )

        if origin is dict:
            if not isinstance(value, dict):
                raise _mismatch(tp, value, path)
            key_tp, value_tp = args if args else (Any, Any)
            return {
                self._coerce(k, key_tp, f"{path}.<key>"): self._coerce(v, value_tp, f"{path}[{k!r}]")
                for k, v in value.items()
            }

        if isinstance(origin, type):
            return self._coerce(value, origin, path)
        raise TypeError(f"Cannot decode as {tp!r}: unsupported type form")

    def _coerce_dataclass(self, value: Any, cls: type, path: str) -> Any:
        if not isinstance(value, dict):
            raise _mismatch(cls, value, path)

        declared = {f.name: f for f in dataclasses.fields(cls)}
        extra = [k for k in value if k not in declared]
        if extra:
            if self.strict:
                raise _mismatch(cls, value, path, f"unknown fields {extra!r}")
            if self.warn_extra_fields:
                warnings.warn(
                    f"Ignoring unknown fields {extra!r} when decoding {cls.__name__}.",
                    UserWarning,
                )

        try:
            hints = typing.get_type_hints(cls)
        except NameError:
            hints = {}

        kwargs = {}
        for name, f in declared.items():
            if not f.init:
                continue
            if name in value:
                field_tp = hints.get(name, f.type if not isinstance(f.type, str) else Any)
                kwargs[name] = self._coerce(value[name], field_tp, f"{path}.{name}")
            elif f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
                raise _mismatch(cls, value, path, f"missing field {name!r}")

        try:
            return cls(**kwargs)
        except (TypeError, ValueError) as e:
            raise _mismatch(cls, value, path, str(e)) from e

    def _collect(self, container: type, items: list, path: str) -> Any:
        try:
            return container(items)
        except TypeError as e:
            # unhashable items for set/frozenset
            raise _mismatch(container, items, path, str(e)) from e


def _mismatch(expected: Any, value: Any, path: str, detail: str = "") -> TypeMismatchError:
    where = f"at {path}"
    return TypeMismatchError(expected, type(value), f"{where}: {detail}" if detail else where)


def _encode_default(obj: Any) -> Any:
    """Translate values MessagePack has no native form for."""
    if isinstance(obj, datetime):
        return msgpack.ExtType(EXT_DATETIME, obj.isoformat().encode("ascii"))
    if isinstance(obj, date):
        return msgpack.ExtType(EXT_DATE, obj.isoformat().encode("ascii"))
    if isinstance(obj, enum.Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
    raise TypeError(f"unsupported type {type(obj).__name__}")


def _freeze(key: Any) -> Any:
    # tuple and frozenset keys come back as arrays
    if isinstance(key, list):
        return tuple(_freeze(k) for k in key)
    return key


def _build_map(pairs: list) -> dict:
    return {_freeze(k): v for k, v in pairs}


def _decode_ext(code: int, data: bytes) -> Any:
    if code == EXT_DATETIME:
        return datetime.fromisoformat(data.decode("ascii"))
    if code == EXT_DATE:
        return date.fromisoformat(data.decode("ascii"))
    return msgpack.ExtType(code, data)


_default_codec = Codec()


def encode(value: Any) -> bytes:
    """Encode a value with the default codec."""
    return _default_codec.encode(value)


def decode(data: bytes, type_: Any = Any) -> Any:
    """Decode bytes as type_ with the default codec."""
    return _default_codec.decode(data, type_)
