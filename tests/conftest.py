import io
import os
from typing import Generator

import pytest
import yaml

from protoserial.infra.protobuf_serializer import ProtobufSerializer
from tests.helpers import FIXTURES, PITAYA_MAPPING, USERS_MAPPING, FakeProtoserialConfig


def pytest_addoption(parser):
    parser.addoption(
        "--update-golden",
        action="store_true",
        default=False,
        help="update .golden files"
    )


@pytest.fixture
def update_golden(request) -> bool:
    return request.config.getoption("--update-golden")


@pytest.fixture
def pitaya_schema() -> str:
    return (FIXTURES / "protos" / "pitaya.proto").read_text()


@pytest.fixture
def users_schema() -> str:
    return (FIXTURES / "protos" / "users.proto").read_text()


@pytest.fixture
def serializer() -> ProtobufSerializer:
    with open(FIXTURES / "protos" / "pitaya.proto", "rb") as schema_source:
        return ProtobufSerializer.from_streams(schema_source, io.StringIO(PITAYA_MAPPING))


@pytest.fixture
def users_serializer(users_schema) -> ProtobufSerializer:
    return ProtobufSerializer.from_streams(
        io.StringIO(users_schema),
        io.StringIO(USERS_MAPPING),
        strict=True
    )


@pytest.fixture
def config_file(tmp_path):
    mapping_file = tmp_path / "mapping.json"
    mapping_file.write_text(USERS_MAPPING)

    data = {
        "schema_file": str(FIXTURES / "protos" / "users.proto"),
        "mapping_file": str(mapping_file),
        "strict_mapping": True,
    }

    file = tmp_path / "protoserial.yaml"
    file.write_text(yaml.dump(data))
    return file


@pytest.fixture
def protoserial_config(config_file) -> Generator[FakeProtoserialConfig, None, None]:
    backup = os.environ.copy()

    try:
        os.environ["TEST_PROTOSERIALCONFIG"] = str(config_file)
        yield FakeProtoserialConfig()
    finally:
        os.environ.clear()
        os.environ.update(backup)
