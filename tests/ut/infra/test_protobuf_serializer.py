import io

import pytest
from google.protobuf import wrappers_pb2
from google.protobuf.message import DecodeError

from protoserial.core.models.errors import WrongValueTypeError
from protoserial.core.models.route import Side
from protoserial.infra.protobuf_serializer import ProtobufSerializer, new_serializer
from tests.fake.fake_stream import BrokenStream, ChunkedStream
from tests.helpers import golden_file, read_golden, write_golden


def make_response(serializer, **fields):
    return serializer.catalog.find_class("Response")(**fields)


@pytest.mark.ut
def test_new_serializer_ok():
    serializer = new_serializer(io.StringIO("protos"), io.StringIO("protosMapping"))

    assert serializer is not None
    assert serializer.protos == "protos"
    assert serializer.protos_mapping == "protosMapping"


@pytest.mark.ut
def test_new_serializer_reads_binary_streams():
    schema = ChunkedStream(b"protos")
    mapping = ChunkedStream(b"protosMapping")

    serializer = ProtobufSerializer.from_streams(schema, mapping)

    assert serializer.protos == "protos"
    assert serializer.protos_mapping == "protosMapping"
    assert schema.reads == 1
    assert mapping.reads == 1


@pytest.mark.ut
@pytest.mark.parametrize("broken", ["schema", "mapping"])
def test_new_serializer_unreadable_stream(broken):
    schema = BrokenStream() if broken == "schema" else io.StringIO("protos")
    mapping = BrokenStream() if broken == "mapping" else io.StringIO("protosMapping")

    with pytest.raises(OSError, match="stream is broken"):
        ProtobufSerializer.from_streams(schema, mapping)


@pytest.mark.ut
def test_marshal_matches_golden_file(serializer, update_golden):
    result = serializer.marshal(make_response(serializer, data=b"data", error="error"))

    if update_golden:
        write_golden("marshal_response", result)

    assert golden_file("marshal_response").exists()
    assert result == read_golden("marshal_response")


@pytest.mark.ut
@pytest.mark.parametrize("value", ["invalid", 42, None, {"data": b"data"}, b"data"])
def test_marshal_not_a_message(serializer, value):
    with pytest.raises(WrongValueTypeError) as info:
        serializer.marshal(value)

    assert info.value.value is value
    assert "wrong value type" in str(info.value)


@pytest.mark.ut
def test_marshal_message_class_is_rejected(serializer):
    with pytest.raises(WrongValueTypeError):
        serializer.marshal(serializer.catalog.find_class("Response"))


@pytest.mark.ut
def test_marshal_is_deterministic(serializer):
    first = serializer.marshal(make_response(serializer, data=b"data", error="error"))
    second = serializer.marshal(make_response(serializer, error="error", data=b"data"))

    assert first == second


@pytest.mark.ut
def test_marshal_empty_message(serializer):
    assert serializer.marshal(make_response(serializer)) == b""


@pytest.mark.ut
def test_unmarshal_golden_file(serializer):
    dest = make_response(serializer)

    serializer.unmarshal(read_golden("marshal_response"), dest)

    assert dest == make_response(serializer, data=b"data", error="error")
    assert dest.data == b"data"
    assert dest.error == "error"


@pytest.mark.ut
@pytest.mark.parametrize("dest", ["invalid", 42, None, bytearray()])
def test_unmarshal_invalid_dest(serializer, dest):
    with pytest.raises(WrongValueTypeError):
        serializer.unmarshal(read_golden("marshal_response"), dest)


@pytest.mark.ut
def test_unmarshal_message_class_is_rejected(serializer):
    response_cls = serializer.catalog.find_class("Response")

    with pytest.raises(WrongValueTypeError):
        serializer.unmarshal(read_golden("marshal_response"), response_cls)


@pytest.mark.ut
def test_unmarshal_invalid_data_leaves_dest_untouched(serializer):
    dest = make_response(serializer, error="previous")

    with pytest.raises(WrongValueTypeError):
        serializer.unmarshal("not bytes", dest)

    assert dest.error == "previous"


@pytest.mark.ut
def test_unmarshal_decode_error_rolls_back(serializer):
    dest = make_response(serializer, data=b"previous", error="previous")

    # field 1, length 127, but only one byte follows
    with pytest.raises(DecodeError):
        serializer.unmarshal(b"\x0a\x7f\x00", dest)

    assert dest.data == b"previous"
    assert dest.error == "previous"


@pytest.mark.ut
def test_unmarshal_replaces_previous_content(serializer):
    dest = make_response(serializer, data=b"previous", error="previous")

    serializer.unmarshal(serializer.marshal(make_response(serializer, error="error")), dest)

    assert dest.data == b""
    assert dest.error == "error"


@pytest.mark.ut
def test_unmarshal_accepts_bytes_like(serializer):
    data = read_golden("marshal_response")

    for payload in (bytearray(data), memoryview(data)):
        dest = make_response(serializer)
        serializer.unmarshal(payload, dest)
        assert dest.error == "error"


@pytest.mark.ut
def test_round_trip_with_library_message(serializer):
    value = wrappers_pb2.StringValue(value="hello")
    dest = wrappers_pb2.StringValue()

    serializer.unmarshal(serializer.marshal(value), dest)

    assert dest == value


@pytest.mark.ut
def test_round_trip_rich_message(users_serializer):
    user = users_serializer.new_message("onNewUser")
    user.name = "alice"
    user.status = 1
    user.addresses.add(city="Paris", zip_code="75001")
    user.scores["chess"] = 1200
    user.scores["go"] = -5
    user.address_book[7].city = "Lyon"
    user.nickname = ""
    user.created_at.seconds = 1_700_000_000
    user.phone = "555-0100"
    user.role = 1
    user.lucky_numbers.extend([3, 7, 42])

    dest = users_serializer.new_message("onNewUser")
    users_serializer.unmarshal(users_serializer.marshal(user), dest)

    assert dest == user
    assert dest.HasField("nickname")
    assert dest.WhichOneof("contact") == "phone"
    assert dict(dest.scores) == {"chess": 1200, "go": -5}
    assert dest.address_book[7].city == "Lyon"


@pytest.mark.ut
def test_map_encoding_is_deterministic(users_serializer):
    first = users_serializer.new_message("onNewUser")
    for key in ("c", "a", "b"):
        first.scores[key] = ord(key)

    second = users_serializer.new_message("onNewUser")
    for key in ("b", "c", "a"):
        second.scores[key] = ord(key)

    assert users_serializer.marshal(first) == users_serializer.marshal(second)


@pytest.mark.ut
def test_new_message_per_side(users_serializer):
    request = users_serializer.new_message("onNewUser", Side.server)
    response = users_serializer.new_message("onNewUser", Side.client)

    assert request.DESCRIPTOR.full_name == "protos.User"
    assert response.DESCRIPTOR.full_name == "protos.Response"


@pytest.mark.ut
def test_unmarshal_route(users_serializer):
    response = users_serializer.new_message("onPing")
    response.error = "pong"

    result = users_serializer.unmarshal_route("onPing", users_serializer.marshal(response))

    assert result == response
    assert result is not response
