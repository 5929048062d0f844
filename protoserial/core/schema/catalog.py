import json
import logging
import threading
from dataclasses import dataclass
from typing import IO, Any

from google.protobuf import descriptor, descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import Message
from pydantic import ValidationError

from protoserial.core.models.errors import MalformedMappingError, SchemaError, UnknownRouteError
from protoserial.core.models.route import RouteEntry, RouteMapping, Side
from protoserial.core.schema.parser import parse_schema, well_known_file


def read_source(source: IO[Any]) -> str:
    """
    Read a text or binary stream to completion. Binary content is
    decoded as UTF-8. Read errors propagate unchanged.
    """
    content = source.read()
    if isinstance(content, (bytes, bytearray, memoryview)):
        return bytes(content).decode("utf-8")
    return content


def _unique_keys(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise MalformedMappingError(f"Duplicate key '{key}' in route mapping")
        result[key] = value
    return result


@dataclass(frozen=True)
class CompiledSchema:
    package: str
    pool: descriptor_pool.DescriptorPool
    message_types: tuple[str, ...]


class SchemaCatalog:
    """
    Immutable pair of raw schema text and raw route-mapping text.

    Construction only materializes both inputs. The schema is compiled
    and the mapping parsed the first time type information is needed,
    so any textual content constructs a catalog. Use `strict=True` on
    `from_streams` to validate both eagerly.

    Lazy work happens once, under a lock; afterwards the catalog is
    read-only and safe to share between threads.
    """

    def __init__(self, protos: str, protos_mapping: str, name: str = "schema.proto") -> None:
        self._protos = protos
        self._protos_mapping = protos_mapping
        self._name = name
        self._lock = threading.Lock()
        self._schema: CompiledSchema | None = None
        self._routes: dict[str, RouteEntry] | None = None
        self._classes: dict[str, type[Message]] = {}
        self._logger = logging.getLogger("core.schema.catalog")

    @classmethod
    def from_streams(
        cls,
        schema_source: IO[Any],
        mapping_source: IO[Any],
        strict: bool = False,
        name: str = "schema.proto"
    ) -> "SchemaCatalog":
        protos = read_source(schema_source)
        protos_mapping = read_source(mapping_source)
        catalog = cls(protos, protos_mapping, name=name)

        if strict:
            catalog.routes()
            catalog.message_types()

        return catalog

    @property
    def protos(self) -> str:
        return self._protos

    @property
    def protos_mapping(self) -> str:
        return self._protos_mapping

    def routes(self) -> dict[str, RouteEntry]:
        return dict(self._load_routes())

    def route(self, name: str) -> RouteEntry:
        entry = self._load_routes().get(name)
        if entry is None:
            raise UnknownRouteError(name)
        return entry

    def message_types(self) -> list[str]:
        return list(self._compile().message_types)

    def message_class(self, route: str, side: Side = Side.server) -> type[Message]:
        """
        Return the message class bound to `route` for the given side.
        """
        type_name = self.route(route).type_name(side)
        if type_name is None:
            raise UnknownRouteError(f"{route} ({side})")

        return self.find_class(type_name)

    def find_class(self, type_name: str) -> type[Message]:
        """
        Return the message class for `type_name`, resolved relative to the
        schema package first. A leading dot marks a fully qualified name.
        """
        schema = self._compile()

        if type_name.startswith("."):
            candidates = [type_name[1:]]
        elif schema.package:
            candidates = [f"{schema.package}.{type_name}", type_name]
        else:
            candidates = [type_name]

        for candidate in candidates:
            try:
                message_descriptor = schema.pool.FindMessageTypeByName(candidate)
            except KeyError:
                continue
            return self._class_for(message_descriptor)

        raise SchemaError(f"Message type '{type_name}' is not declared")

    def _class_for(self, message_descriptor: descriptor.Descriptor) -> type[Message]:
        with self._lock:
            cls = self._classes.get(message_descriptor.full_name)
            if cls is None:
                cls = message_factory.GetMessageClass(message_descriptor)
                self._classes[message_descriptor.full_name] = cls
            return cls

    def _load_routes(self) -> dict[str, RouteEntry]:
        with self._lock:
            if self._routes is None:
                try:
                    data = json.loads(self._protos_mapping, object_pairs_hook=_unique_keys)
                    self._routes = RouteMapping.validate_python(data)
                except json.JSONDecodeError as ex:
                    raise MalformedMappingError(f"Route mapping is not valid JSON: {ex}") from ex
                except ValidationError as ex:
                    raise MalformedMappingError(f"Invalid route mapping: {ex}") from ex

                self._logger.debug(f"Loaded {len(self._routes)} routes")
            return self._routes

    def _compile(self) -> CompiledSchema:
        with self._lock:
            if self._schema is None:
                file_proto = parse_schema(self._protos, self._name)
                pool = descriptor_pool.DescriptorPool()

                try:
                    for dependency in file_proto.dependency:
                        pool.AddSerializedFile(well_known_file(dependency).SerializeToString())
                    pool.AddSerializedFile(file_proto.SerializeToString())
                except TypeError as ex:
                    raise SchemaError(f"Invalid schema: {ex}") from ex

                names = tuple(_message_names(file_proto))
                self._schema = CompiledSchema(
                    package=file_proto.package,
                    pool=pool,
                    message_types=names
                )
                self._logger.debug(f"Compiled schema '{self._name}' with {len(names)} message types")
            return self._schema


def _message_names(file_proto: descriptor_pb2.FileDescriptorProto) -> list[str]:
    names: list[str] = []

    def walk(scope: str, message: descriptor_pb2.DescriptorProto) -> None:
        if message.options.map_entry:
            return
        name = f"{scope}.{message.name}" if scope else message.name
        names.append(name)
        for nested in message.nested_type:
            walk(name, nested)

    for message in file_proto.message_type:
        walk(file_proto.package, message)

    return names


def new_catalog(schema_source: IO[Any], mapping_source: IO[Any], strict: bool = False) -> SchemaCatalog:
    return SchemaCatalog.from_streams(schema_source, mapping_source, strict=strict)
