import logging
from typing import IO, Any

from google.protobuf.message import Message

from protoserial.core.models.errors import WrongValueTypeError
from protoserial.core.models.route import Side
from protoserial.core.ports.serializer import Serializer
from protoserial.core.schema.catalog import SchemaCatalog


class ProtobufSerializer(Serializer):
    """
    Protobuf-based implementation of the Serializer interface.

    - standard protobuf wire format
    - deterministic encoding (map entries are sorted)
    - rejects anything that is not a message instance
    - decoding never leaves a destination half written
    """

    def __init__(self, catalog: SchemaCatalog) -> None:
        self._catalog = catalog
        self._logger = logging.getLogger("infra.protobuf_serializer")

    @classmethod
    def from_streams(
        cls,
        schema_source: IO[Any],
        mapping_source: IO[Any],
        strict: bool = False
    ) -> "ProtobufSerializer":
        return cls(SchemaCatalog.from_streams(schema_source, mapping_source, strict=strict))

    @property
    def catalog(self) -> SchemaCatalog:
        return self._catalog

    @property
    def protos(self) -> str:
        return self._catalog.protos

    @property
    def protos_mapping(self) -> str:
        return self._catalog.protos_mapping

    def marshal(self, value: Any) -> bytes:
        if not isinstance(value, Message):
            self._logger.debug(f"Refusing to marshal {type(value).__name__}")
            raise WrongValueTypeError(value)

        return value.SerializeToString(deterministic=True)

    def unmarshal(self, data: bytes, destination: Any) -> None:
        if not isinstance(destination, Message):
            self._logger.debug(f"Refusing to unmarshal into {type(destination).__name__}")
            raise WrongValueTypeError(destination)

        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise WrongValueTypeError(data)

        # Decode aside so a DecodeError leaves the destination untouched
        decoded = type(destination)()
        decoded.ParseFromString(bytes(data))
        destination.CopyFrom(decoded)

    def new_message(self, route: str, side: Side = Side.server) -> Message:
        return self._catalog.message_class(route, side)()

    def unmarshal_route(self, route: str, data: bytes, side: Side = Side.server) -> Message:
        message = self.new_message(route, side)
        self.unmarshal(data, message)
        return message


def new_serializer(
    schema_source: IO[Any],
    mapping_source: IO[Any],
    strict: bool = False
) -> ProtobufSerializer:
    return ProtobufSerializer.from_streams(schema_source, mapping_source, strict=strict)
