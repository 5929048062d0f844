import os
from pathlib import Path

from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, YamlConfigSettingsSource

from protoserial.bootstrap.config.settings import ProtoserialConfig

FIXTURES = Path(__file__).parent / "fixtures"

PITAYA_MAPPING = '{"onNewUser":{"server": "Response"}}'

USERS_MAPPING = """
{
    "onNewUser": {"server": "User", "client": "Response"},
    "onPing": {"server": ".protos.Response"}
}
"""


class FakeProtoserialConfig(ProtoserialConfig, BaseSettings):
    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (YamlConfigSettingsSource(settings_cls, yaml_file=os.environ["TEST_PROTOSERIALCONFIG"]),)


def golden_file(name: str) -> Path:
    return FIXTURES / "golden" / f"{name}.golden"


def read_golden(name: str) -> bytes:
    return golden_file(name).read_bytes()


def write_golden(name: str, data: bytes) -> None:
    golden_file(name).write_bytes(data)
