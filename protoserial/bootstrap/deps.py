import json
from functools import lru_cache

from pydantic import ValidationError

from protoserial.bootstrap.config.settings import ProtoserialConfig
from protoserial.infra.protobuf_serializer import ProtobufSerializer


def build_serializer(config: ProtoserialConfig) -> ProtobufSerializer:
    with config.schema_file.open("rb") as schema_source, config.mapping_file.open("rb") as mapping_source:
        return ProtobufSerializer.from_streams(
            schema_source,
            mapping_source,
            strict=config.strict_mapping
        )


@lru_cache
def get_serializer() -> ProtobufSerializer:
    return build_serializer(get_config())


@lru_cache
def get_config() -> ProtoserialConfig:
    try:
        return ProtoserialConfig()  # type: ignore[call-arg]
    except FileNotFoundError as ex:
        raise SystemExit(f"Provide a correct configuration file path: {ex}")
    except ValidationError as ex:
        msg = ["Configuration validation failed:"]
        errs = json.loads(ex.json())
        for err in errs:
            msg.append(f"  {'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}")
        raise SystemExit("\n".join(msg))
