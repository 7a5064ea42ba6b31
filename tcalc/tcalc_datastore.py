"""
A small persisted key/value store.

Record format: a variable-length count, then that many (key, value) pairs,
each written by a pluggable StreamCodec. Reading builds an immutable
DataStore and hands it to a DataStoreWrapper, which activates it and can
replay it to visitors.

Variable-length integers (VLI) store 7 bits per byte, lowest group first;
every byte but the last has its high bit set.
"""
import logging
import struct
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import BinaryIO, Callable, Dict, Generic, Iterator, List, Optional, TypeVar

from tcalc.tcalc_errors import DataStoreError

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")

# 64-bit values need at most ten 7-bit groups
_MAX_VLI_BYTES = 10


def _read_exact(stream: BinaryIO, count: int) -> bytes:
    data = stream.read(count)
    if data is None or len(data) != count:
        raise DataStoreError(f"Unexpected end of stream: wanted {count} byte(s), got {len(data or b'')}")
    return data


def write_vli(stream: BinaryIO, value: int):
    if value < 0:
        raise DataStoreError(f"VLI can't encode negative value {value}")
    out = bytearray()
    while True:
        group = value & 0x7F
        value >>= 7
        if value:
            out.append(group | 0x80)
        else:
            out.append(group)
            break
    stream.write(bytes(out))


def read_vli(stream: BinaryIO) -> int:
    result = 0
    shift = 0
    for _ in range(_MAX_VLI_BYTES):
        byte = _read_exact(stream, 1)[0]
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result
        shift += 7
    raise DataStoreError(f"VLI longer than {_MAX_VLI_BYTES} bytes")


# =================================================================
# Codecs
# =================================================================

class StreamCodec(ABC, Generic[V]):
    """Reads and writes one kind of value."""

    @abstractmethod
    def read(self, stream: BinaryIO) -> V:
        pass

    @abstractmethod
    def write(self, stream: BinaryIO, value: V):
        pass


class VLICodec(StreamCodec[int]):
    def read(self, stream):
        return read_vli(stream)

    def write(self, stream, value):
        write_vli(stream, value)


class _StructCodec(StreamCodec):
    def __init__(self, fmt: str):
        self._struct = struct.Struct(fmt)

    def read(self, stream):
        return self._struct.unpack(_read_exact(stream, self._struct.size))[0]

    def write(self, stream, value):
        try:
            stream.write(self._struct.pack(value))
        except struct.error as e:
            raise DataStoreError(f"Can't encode {value!r}: {e}") from e


class IntCodec(_StructCodec):
    """Signed 64-bit, big endian."""
    def __init__(self):
        super().__init__(">q")


class FloatCodec(_StructCodec):
    """IEEE 754 double, big endian."""
    def __init__(self):
        super().__init__(">d")


class BoolCodec(StreamCodec[bool]):
    def read(self, stream):
        byte = _read_exact(stream, 1)[0]
        if byte > 1:
            raise DataStoreError(f"Invalid bool byte: {byte}")
        return byte == 1

    def write(self, stream, value):
        stream.write(b"\x01" if value else b"\x00")


class StringCodec(StreamCodec[str]):
    """UTF-8 bytes prefixed with their VLI length."""

    def read(self, stream):
        size = read_vli(stream)
        try:
            return _read_exact(stream, size).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DataStoreError(f"Invalid UTF-8 string: {e}") from e

    def write(self, stream, value):
        data = value.encode("utf-8")
        write_vli(stream, len(data))
        stream.write(data)


# =================================================================
# Store
# =================================================================

class DataStore(Mapping, Generic[K, V]):
    """Immutable mapping produced by a reader."""

    def __init__(self, values: Optional[Dict[K, V]] = None):
        self._values: Dict[K, V] = dict(values or {})

    def __getitem__(self, key):
        return self._values[key]

    def __iter__(self) -> Iterator[K]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"DataStore({self._values!r})"


class IDataVisitor(ABC, Generic[K, V]):
    @abstractmethod
    def begin(self, size: int):
        pass

    @abstractmethod
    def entry(self, key: K, value: V):
        pass

    @abstractmethod
    def end(self):
        pass


class DataStoreWrapper(Generic[K, V]):
    """
    Holds the active store. Activation replays the store to every registered
    visitor; an optional callback sees the store itself.
    """

    def __init__(self, on_activate: Optional[Callable[[DataStore], None]] = None):
        self.on_activate = on_activate
        self.store: Optional[DataStore[K, V]] = None
        self._visitors: List[IDataVisitor[K, V]] = []

    def add_visitor(self, visitor: IDataVisitor[K, V]) -> 'DataStoreWrapper':
        self._visitors.append(visitor)
        return self

    def activate(self, store: DataStore[K, V]):
        self.store = store
        logger.debug("Activating data store with %d entries", len(store))
        for visitor in self._visitors:
            self.visit(visitor)
        if self.on_activate is not None:
            self.on_activate(store)

    def visit(self, visitor: IDataVisitor[K, V]):
        if self.store is None:
            raise DataStoreError("No data store has been activated")
        visitor.begin(len(self.store))
        for key, value in self.store.items():
            visitor.entry(key, value)
        visitor.end()


class DataStoreReader(Generic[K, V]):
    def __init__(self, wrapper: DataStoreWrapper[K, V], key_codec: StreamCodec[K], value_codec: StreamCodec[V]):
        self.wrapper = wrapper
        self.key_codec = key_codec
        self.value_codec = value_codec

    def read(self, stream: BinaryIO) -> DataStore[K, V]:
        size = read_vli(stream)
        values: Dict[K, V] = {}
        for _ in range(size):
            key = self.key_codec.read(stream)
            values[key] = self.value_codec.read(stream)
        logger.debug("Read %d data store entries", size)
        result = DataStore(values)
        self.wrapper.activate(result)
        return result


class DataStoreWriter(Generic[K, V]):
    def __init__(self, key_codec: StreamCodec[K], value_codec: StreamCodec[V]):
        self.key_codec = key_codec
        self.value_codec = value_codec

    def write(self, stream: BinaryIO, values: Mapping):
        write_vli(stream, len(values))
        for key, value in values.items():
            self.key_codec.write(stream, key)
            self.value_codec.write(stream, value)
