import argparse
import functools
import json
from typing import Any, Protocol

import yaml
from google.protobuf import json_format

from protoserial.infra.protobuf_serializer import ProtobufSerializer


class CommandHandler(Protocol):
    def __call__(
        self,
        serializer: ProtobufSerializer,
        namespace: argparse.Namespace,
    ) -> str:
        ...


class CommandDispatcher:
    def __init__(self) -> None:
        self._commands: dict[str, CommandHandler] = {}

    def dispatch(
        self,
        name: str,
        serializer: ProtobufSerializer,
        namespace: argparse.Namespace
    ) -> str:
        command = self._commands.get(name)
        if command is None:
            raise RuntimeError(f"Unknown '{name}' Command")
        return command(serializer, namespace)

    def command(self, name: str):
        def decorator(func: CommandHandler):

            @functools.wraps(func)
            def wrapper(
                serializer: ProtobufSerializer,
                namespace: argparse.Namespace,
            ) -> str:
                return func(serializer, namespace)

            self._commands[name] = wrapper

            return wrapper

        return decorator


dispatcher = CommandDispatcher()


def render(data: dict[str, Any], output: str) -> str:
    if output == "yaml":
        return yaml.safe_dump(data, sort_keys=False).rstrip("\n")
    return json.dumps(data, indent=2, sort_keys=False)


@dispatcher.command("routes")
def list_routes(serializer: ProtobufSerializer, namespace: argparse.Namespace) -> str:
    routes = serializer.catalog.routes()
    data = {name: entry.model_dump(exclude_none=True) for name, entry in sorted(routes.items())}
    return render(data, namespace.output)


@dispatcher.command("encode")
def encode(serializer: ProtobufSerializer, namespace: argparse.Namespace) -> str:
    message = serializer.new_message(namespace.route, namespace.side)
    json_format.Parse(namespace.json, message)
    return serializer.marshal(message).hex()


@dispatcher.command("decode")
def decode(serializer: ProtobufSerializer, namespace: argparse.Namespace) -> str:
    data = bytes.fromhex(namespace.hex)
    message = serializer.unmarshal_route(namespace.route, data, namespace.side)
    return render(
        json_format.MessageToDict(message, preserving_proto_field_name=True),
        namespace.output
    )
