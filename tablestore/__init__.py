"""
tablestore - embeddable in-process store of tables holding typed fields.

Values are kept as opaque MessagePack bytes and read back as the type the
caller asks for. All operations are coroutines coordinated by a single
reader/writer lock over the whole namespace.

Quick Start:
    import asyncio
    from tablestore import Store

    async def main():
        store = Store()
        await store.create_table("accounts")
        await store.write_field("accounts", "balance", 100)
        print(await store.read_field("accounts", "balance", int))  # 100

        # Persistence is up to the host
        data = await store.snapshot()
        restored = Store.restore(data)

    asyncio.run(main())

Key Classes:
    - Store: Tables, fields and snapshots
    - Codec: Typed value <-> bytes conversion
    - ReadWriteLock: asyncio reader/writer lock
"""

from .core import Store
from .codec import Codec, encode, decode
from .locking import ReadWriteLock
from .exceptions import (
    StoreError,
    NoSuchTableError,
    NoSuchFieldError,
    DecodeError,
    TypeMismatchError,
    EncodeError,
)

__all__ = [
    # Main API
    "Store",
    # Codec
    "Codec",
    "encode",
    "decode",
    # Concurrency
    "ReadWriteLock",
    # Exceptions
    "StoreError",
    "NoSuchTableError",
    "NoSuchFieldError",
    "DecodeError",
    "TypeMismatchError",
    "EncodeError",
]

__version__ = "0.1.0"
