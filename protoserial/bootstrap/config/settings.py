from pathlib import Path
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_core.core_schema import ValidationInfo
from pydantic_settings import BaseSettings, SettingsConfigDict, PydanticBaseSettingsSource, YamlConfigSettingsSource

from protoserial.bootstrap.config.loader import get_configfile


class ProtoserialConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PROTOSERIAL_",
        extra="allow"
    )

    schema_file: Annotated[
        Path,
        Field(
            description=(
                "Path to the .proto file describing the message types.\n"
                "Only well-known google/protobuf imports are supported."
            )
        )
    ]

    mapping_file: Annotated[
        Path,
        Field(
            description=(
                "Path to the JSON route mapping, e.g.\n"
                '  {"onNewUser": {"server": "Response"}}\n'
                "Keys are route names, values name the message types of the route."
            )
        )
    ]

    strict_mapping: Annotated[
        bool,
        Field(
            description=(
                "Validate the mapping and compile the schema at startup instead of\n"
                "on first use. Startup fails fast on malformed content."
            ),
            default=False
        )
    ]

    @field_validator("schema_file", "mapping_file")
    @classmethod
    def validate_path(cls, v: Path, _: ValidationInfo) -> Path:
        if not v.is_file():
            raise ValueError(f"Path {v} does not exist.")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (YamlConfigSettingsSource(settings_cls, yaml_file=get_configfile()),)
