"""
Tag <-> id registry for value codecs.

Every tag a registry can load is listed in CODEC_FACTORIES up front; loading
an unknown tag fails immediately with ConfigError. Ids usually come from a
data store (the registry is an IDataVisitor) or from configuration.
"""
import logging
from typing import BinaryIO, Callable, Dict, Mapping

from tcalc.tcalc_datastore import (
    IDataVisitor, StreamCodec, IntCodec, FloatCodec, BoolCodec, StringCodec, read_vli, write_vli
)
from tcalc.tcalc_errors import ConfigError, DataStoreError
from tcalc.tcalc_types import Cons, TypedValue, TypeDomain

logger = logging.getLogger(__name__)

NoneType = type(None)


class KindCodec(StreamCodec[TypedValue]):
    """Payload codec for one scalar kind."""

    def __init__(self, domain: TypeDomain, kind: type, payload: StreamCodec):
        self.domain = domain
        self.kind = kind
        self.payload = payload

    def read(self, stream):
        return self.domain.create(self.kind, self.payload.read(stream))

    def write(self, stream, value):
        self.payload.write(stream, value.as_type(self.kind, "codec payload"))


class NullCodec(StreamCodec[TypedValue]):
    def __init__(self, domain: TypeDomain):
        self.domain = domain

    def read(self, stream):
        return self.domain.create(NoneType, None)

    def write(self, stream, value):
        value.as_type(NoneType, "codec payload")


class ConsCodec(StreamCodec[TypedValue]):
    """Writes car and cdr through the enclosing value codec, so they carry their own tags."""

    def __init__(self, domain: TypeDomain, values: StreamCodec[TypedValue]):
        self.domain = domain
        self.values = values

    def read(self, stream):
        car = self.values.read(stream)
        cdr = self.values.read(stream)
        return self.domain.create(Cons, Cons(car, cdr))

    def write(self, stream, value):
        pair = value.as_type(Cons, "codec payload")
        self.values.write(stream, pair.car)
        self.values.write(stream, pair.cdr)


CodecFactory = Callable[[TypeDomain, StreamCodec], StreamCodec]

CODEC_FACTORIES: Dict[str, CodecFactory] = {
    "int": lambda domain, values: KindCodec(domain, int, IntCodec()),
    "float": lambda domain, values: KindCodec(domain, float, FloatCodec()),
    "str": lambda domain, values: KindCodec(domain, str, StringCodec()),
    "bool": lambda domain, values: KindCodec(domain, bool, BoolCodec()),
    "null": lambda domain, values: NullCodec(domain),
    "cons": lambda domain, values: ConsCodec(domain, values),
}


class TypedValueCodec(StreamCodec[TypedValue]):
    """`VLI id` of the value's kind, followed by its payload."""

    def __init__(self, registry: 'CodecRegistry', domain: TypeDomain):
        self.registry = registry
        self.domain = domain
        self._codecs: Dict[str, StreamCodec] = {}

    def codec_for_tag(self, tag: str) -> StreamCodec:
        codec = self._codecs.get(tag)
        if codec is None:
            codec = CODEC_FACTORIES[tag](self.domain, self)
            self._codecs[tag] = codec
        return codec

    def read(self, stream: BinaryIO) -> TypedValue:
        codec_id = read_vli(stream)
        try:
            tag = self.registry.tag_for(codec_id)
        except ConfigError as e:
            raise DataStoreError(str(e)) from e
        return self.codec_for_tag(tag).read(stream)

    def write(self, stream: BinaryIO, value: TypedValue):
        tag = self.domain.type_name(value.type)
        write_vli(stream, self.registry.id_for(tag))
        self.codec_for_tag(tag).write(stream, value)


class CodecRegistry(IDataVisitor[str, int]):

    def __init__(self):
        self._ids: Dict[str, int] = {}
        self._tags: Dict[int, str] = {}

    def begin(self, size: int):
        self._ids.clear()
        self._tags.clear()

    def entry(self, tag: str, codec_id: int):
        if tag not in CODEC_FACTORIES:
            raise ConfigError(f"Unknown codec tag {tag!r}; known tags: {', '.join(sorted(CODEC_FACTORIES))}")
        if not isinstance(codec_id, int) or isinstance(codec_id, bool) or codec_id < 0:
            raise ConfigError(f"Codec id for {tag!r} must be a non-negative int, got {codec_id!r}")
        if codec_id in self._tags and self._tags[codec_id] != tag:
            raise ConfigError(f"Codec id {codec_id} is used by both {self._tags[codec_id]!r} and {tag!r}")
        previous = self._ids.get(tag)
        if previous is not None:
            del self._tags[previous]
        self._ids[tag] = codec_id
        self._tags[codec_id] = tag

    def end(self):
        logger.debug("Codec registry loaded: %s", self._ids)

    def load(self, table: Mapping[str, int]) -> 'CodecRegistry':
        """Replaces the registry's contents with `table` (tag -> id)."""
        self.begin(len(table))
        for tag, codec_id in table.items():
            self.entry(tag, codec_id)
        self.end()
        return self

    def id_for(self, tag: str) -> int:
        try:
            return self._ids[tag]
        except KeyError:
            raise ConfigError(f"Codec tag {tag!r} is not registered") from None

    def tag_for(self, codec_id: int) -> str:
        try:
            return self._tags[codec_id]
        except KeyError:
            raise ConfigError(f"Can't find codec for id {codec_id}") from None

    def codec_for(self, codec_id: int, domain: TypeDomain) -> StreamCodec:
        """Payload codec for a registered id (without the leading id)."""
        return self.value_codec(domain).codec_for_tag(self.tag_for(codec_id))

    def value_codec(self, domain: TypeDomain) -> TypedValueCodec:
        return TypedValueCodec(self, domain)

    def __contains__(self, tag: str) -> bool:
        return tag in self._ids
