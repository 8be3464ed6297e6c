"""Core Store class: named tables of named, typed fields."""

import logging
from typing import Any, List, Optional

from .codec import Codec, Namespace
from .exceptions import NoSuchFieldError, NoSuchTableError
from .locking import ReadWriteLock

logger = logging.getLogger(__name__)


class Store:
    """In-process key-value store of tables holding typed fields.

    Every field holds the bytes its codec produced for the last value
    written to it. The store does not remember what type that was; the
    reader names the type it wants and gets TypeMismatchError if the
    stored value cannot be read that way.

    The whole namespace sits behind one ReadWriteLock. Lookups take it in
    shared mode and mutations in exclusive mode, each for exactly one
    step, and no mutation suspends while holding it, so a reader sees a
    field either before or after a write, never halfway.

    Persistence belongs to the host: snapshot() hands out bytes and
    restore() builds a Store back from them.

    Example:
        store = Store()

        await store.create_table("accounts")
        await store.write_field("accounts", "balance", 100)
        await store.read_field("accounts", "balance", int)  # 100
        await store.read_field("accounts", "balance", str)  # TypeMismatchError

        data = await store.snapshot()
        copy = Store.restore(data)
    """

    def __init__(self, codec: Optional[Codec] = None):
        """Create an empty Store.

        Use Store.restore() to rebuild one from a snapshot.

        Args:
            codec: Codec used for field values and snapshots
        """
        self._codec = codec if codec is not None else Codec()
        self._tables: Namespace = {}
        self._lock = ReadWriteLock()

    @property
    def codec(self) -> Codec:
        return self._codec

    # Tables

    async def create_table(self, name: str) -> None:
        """Create an empty table. Does nothing if it already exists.

        Args:
            name: Table name
        """
        # Check and insert are two separate acquisitions; asking for the
        # write side while still holding the read side would deadlock.
        async with self._lock.reader():
            if name in self._tables:
                return

        async with self._lock.writer():
            self._tables.setdefault(name, {})
        logger.debug("create_table: %r", name)

    async def drop_table(self, name: str) -> None:
        """Remove a table and all of its fields. Does nothing if absent.

        Args:
            name: Table name
        """
        async with self._lock.writer():
            dropped = self._tables.pop(name, None)
        if dropped is not None:
            logger.debug("drop_table: %r (%d fields)", name, len(dropped))

    async def has_table(self, name: str) -> bool:
        """Check if a table exists."""
        async with self._lock.reader():
            return name in self._tables

    async def tables(self) -> List[str]:
        """List table names in sorted order."""
        async with self._lock.reader():
            return sorted(self._tables)

    async def fields(self, table: str) -> List[str]:
        """List the field names of a table in sorted order.

        Raises:
            NoSuchTableError: If the table does not exist
        """
        async with self._lock.reader():
            try:
                return sorted(self._tables[table])
            except KeyError:
                raise NoSuchTableError(table) from None

    # Fields

    async def write_field(self, table: str, field: str, value: Any) -> None:
        """Store a value in a field, creating or overwriting it.

        Overwriting never looks at the old value, so a field may hold a
        different type after each write. Keeping types consistent per field
        is up to the caller.

        Args:
            table: Name of an existing table
            field: Field name
            value: Any value the codec can encode

        Raises:
            NoSuchTableError: If the table does not exist
            EncodeError: If the value cannot be encoded
        """
        data = self._codec.encode(value)

        async with self._lock.writer():
            entries = self._tables.get(table)
            if entries is None:
                raise NoSuchTableError(table)
            entries[field] = data
        logger.debug("write_field: %r/%r (%d bytes)", table, field, len(data))

    async def read_field(self, table: str, field: str, type_: Any = Any) -> Any:
        """Read a field back as the requested type.

        Args:
            table: Table name
            field: Field name
            type_: Type to decode the value as (e.g. int, List[str], a
                dataclass). Any returns the value as stored.

        Returns:
            The decoded value

        Raises:
            NoSuchTableError: If the table does not exist
            NoSuchFieldError: If the field does not exist in the table
            TypeMismatchError: If the stored value cannot be read as type_
        """
        async with self._lock.reader():
            entries = self._tables.get(table)
            if entries is None:
                raise NoSuchTableError(table)
            data = entries.get(field)
            if data is None:
                raise NoSuchFieldError(table, field)
            return self._codec.decode(data, type_)

    async def get_field(
        self, table: str, field: str, type_: Any = Any, default: Any = None
    ) -> Any:
        """Read a field, or return default if the table or field is missing.

        A stored value of the wrong type still raises TypeMismatchError.
        """
        try:
            return await self.read_field(table, field, type_)
        except (NoSuchTableError, NoSuchFieldError):
            return default

    async def delete_field(self, table: str, field: str) -> None:
        """Remove a field. Does nothing if the table or field is absent.

        Args:
            table: Table name
            field: Field name
        """
        async with self._lock.writer():
            entries = self._tables.get(table)
            if entries is None or entries.pop(field, None) is None:
                return
        logger.debug("delete_field: %r/%r", table, field)

    # Snapshots

    async def snapshot(self) -> bytes:
        """Serialize the whole namespace as of a single consistent read.

        Returns:
            Opaque bytes accepted by Store.restore()
        """
        async with self._lock.reader():
            data = self._codec.encode_namespace(self._tables)
        logger.debug("snapshot: %d tables, %d bytes", len(self._tables), len(data))
        return data

    @classmethod
    def restore(cls, data: bytes, codec: Optional[Codec] = None) -> "Store":
        """Build a new Store from snapshot bytes.

        Args:
            data: Bytes produced by snapshot()
            codec: Codec for the new store (defaults to a fresh Codec)

        Returns:
            A new Store holding exactly the snapshot's tables and fields

        Raises:
            DecodeError: If data is not a valid snapshot
        """
        codec = codec if codec is not None else Codec()
        namespace = codec.decode_namespace(data)
        logger.debug("restore: %d tables", len(namespace))
        store = cls(codec=codec)
        store._tables = namespace
        return store

    # Diagnostics

    def to_display_string(self) -> str:
        """Render the namespace for debugging. The format is not stable."""
        lines = [f"Store({len(self._tables)} tables)"]
        for table in sorted(self._tables):
            fields = self._tables[table]
            lines.append(f"  {table} ({len(fields)} fields)")
            for field in sorted(fields):
                lines.append(f"    {field}: {len(fields[field])} bytes")
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.to_display_string()

    def __repr__(self) -> str:
        return f"<Store tables={len(self._tables)} lock={self._lock!r}>"
