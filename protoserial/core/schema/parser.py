import re
from dataclasses import dataclass

from google.protobuf import (
    any_pb2,
    descriptor_pb2,
    duration_pb2,
    empty_pb2,
    field_mask_pb2,
    struct_pb2,
    timestamp_pb2,
    wrappers_pb2,
)

from protoserial.core.models.errors import SchemaError

FieldProto = descriptor_pb2.FieldDescriptorProto

SCALAR_TYPES: dict[str, int] = {
    "double": FieldProto.TYPE_DOUBLE,
    "float": FieldProto.TYPE_FLOAT,
    "int64": FieldProto.TYPE_INT64,
    "uint64": FieldProto.TYPE_UINT64,
    "int32": FieldProto.TYPE_INT32,
    "fixed64": FieldProto.TYPE_FIXED64,
    "fixed32": FieldProto.TYPE_FIXED32,
    "bool": FieldProto.TYPE_BOOL,
    "string": FieldProto.TYPE_STRING,
    "bytes": FieldProto.TYPE_BYTES,
    "uint32": FieldProto.TYPE_UINT32,
    "sfixed32": FieldProto.TYPE_SFIXED32,
    "sfixed64": FieldProto.TYPE_SFIXED64,
    "sint32": FieldProto.TYPE_SINT32,
    "sint64": FieldProto.TYPE_SINT64,
}

# floating point and bytes keys are rejected by protoc
MAP_KEY_TYPES = frozenset(SCALAR_TYPES) - {"double", "float", "bytes"}

LABELS: dict[str, int] = {
    "optional": FieldProto.LABEL_OPTIONAL,
    "required": FieldProto.LABEL_REQUIRED,
    "repeated": FieldProto.LABEL_REPEATED,
}

WELL_KNOWN_FILES = {
    module.DESCRIPTOR.name: module.DESCRIPTOR
    for module in (
        any_pb2,
        duration_pb2,
        empty_pb2,
        field_mask_pb2,
        struct_pb2,
        timestamp_pb2,
        wrappers_pb2,
    )
}

_TOKEN = re.compile(
    r"""
      (?P<newline>\n)
    | (?P<space>[ \t\r\f\v]+)
    | (?P<comment>//[^\n]*|/\*.*?\*/)
    | (?P<string>"(?:[^"\\\n]|\\.)*"|'(?:[^'\\\n]|\\.)*')
    | (?P<number>[+-]?(?:0[xX][0-9a-fA-F]+|\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?))
    | (?P<ident>\.?[A-Za-z_]\w*(?:\.[A-Za-z_]\w*)*)
    | (?P<symbol>[{}()\[\]<>;,=:\-])
    """,
    re.VERBOSE | re.DOTALL,
)


_ESCAPE = re.compile(
    r"\\(?:([0-7]{1,3})|[xX]([0-9a-fA-F]{1,2})|u([0-9a-fA-F]{4})|U([0-9a-fA-F]{8})|(.))",
    re.DOTALL,
)

SIMPLE_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
}


@dataclass(frozen=True)
class Token:
    kind: str
    value: str
    line: int


def tokenize(text: str) -> list[Token]:
    tokens: list[Token] = []
    line = 1
    pos = 0

    while pos < len(text):
        match = _TOKEN.match(text, pos)
        if match is None:
            raise SchemaError(f"Unexpected character {text[pos]!r}", line)

        kind = match.lastgroup
        value = match.group()
        if kind in ("string", "number", "ident", "symbol"):
            tokens.append(Token(kind, value, line))

        line += value.count("\n")
        pos = match.end()

    return tokens


def camel_case(name: str, upper_first: bool) -> str:
    parts = name.split("_")
    head = parts[0]
    if upper_first:
        head = head[:1].upper() + head[1:]
    return head + "".join(p[:1].upper() + p[1:] for p in parts[1:])


def unquote(value: str) -> str:
    return value[1:-1]


def unescape(value: str) -> str:
    """
    Decode the C escapes of a string literal body. Octal and hex escapes
    denote raw bytes, which must form valid UTF-8 once decoded.
    """
    decoded = bytearray()
    pos = 0

    for match in _ESCAPE.finditer(value):
        decoded += value[pos:match.start()].encode()
        octal, hex_byte, short, long, char = match.groups()
        if octal:
            decoded.append(int(octal, 8) & 0xFF)
        elif hex_byte:
            decoded.append(int(hex_byte, 16))
        elif short or long:
            decoded += chr(int(short or long, 16)).encode()
        else:
            decoded += SIMPLE_ESCAPES.get(char, char).encode()
        pos = match.end()

    decoded += value[pos:].encode()
    return decoded.decode("utf-8")


def well_known_file(path: str) -> descriptor_pb2.FileDescriptorProto:
    """
    Return the FileDescriptorProto of a bundled well-known type file,
    e.g. "google/protobuf/timestamp.proto".
    """
    descriptor = WELL_KNOWN_FILES.get(path)
    if descriptor is None:
        raise SchemaError(f"Unsupported import '{path}'")

    file_proto = descriptor_pb2.FileDescriptorProto()
    descriptor.CopyToProto(file_proto)
    return file_proto


class SchemaParser:
    """
    Compiles `.proto` text into a FileDescriptorProto.

    The parser covers the subset of the protobuf language used to describe
    RPC payloads: messages (nested), enums, scalar/message/enum fields,
    labels, proto3 `optional`, maps and oneofs. Options are skipped, except
    the few field options that change the descriptor (`default`,
    `json_name`, `packed`, `deprecated`) and `allow_alias` on enums.
    Services and extensions are skipped as they carry no payload shape.

    Type references are resolved in a second pass following protobuf
    scoping rules, so the produced descriptor only contains fully
    qualified type names and can be added to a DescriptorPool as-is.
    """

    def __init__(self, text: str, name: str = "schema.proto") -> None:
        self._tokens = tokenize(text)
        self._pos = 0
        self._name = name
        self._proto3 = False
        self._path: list[str] = []
        self._lines: dict[tuple[str, str], int] = {}

    def parse(self) -> descriptor_pb2.FileDescriptorProto:
        file_proto = descriptor_pb2.FileDescriptorProto(name=self._name)

        while not self._eof():
            token = self._next()
            if token.value == "syntax":
                self._parse_syntax(file_proto, token)
            elif token.value == "edition":
                raise SchemaError("Editions are not supported", token.line)
            elif token.value == "package":
                file_proto.package = self._expect_kind("ident").value.lstrip(".")
                self._expect(";")
            elif token.value == "import":
                if self._peek().value in ("public", "weak"):
                    self._next()
                file_proto.dependency.append(self._expect_string())
                self._expect(";")
            elif token.value == "option":
                self._skip_statement()
            elif token.value == "message":
                self._parse_message(file_proto.message_type.add())
            elif token.value == "enum":
                self._parse_enum(file_proto.enum_type.add())
            elif token.value in ("service", "extend"):
                self._skip_block()
            elif token.value != ";":
                raise SchemaError(f"Unexpected token '{token.value}'", token.line)

        self._resolve(file_proto)
        return file_proto

    def _parse_syntax(self, file_proto: descriptor_pb2.FileDescriptorProto, token: Token) -> None:
        self._expect("=")
        syntax = self._expect_string()
        self._expect(";")

        if syntax not in ("proto2", "proto3"):
            raise SchemaError(f"Unknown syntax '{syntax}'", token.line)

        self._proto3 = syntax == "proto3"
        if self._proto3:
            file_proto.syntax = syntax

    def _parse_message(self, message: descriptor_pb2.DescriptorProto) -> None:
        message.name = self._expect_simple_name()
        self._path.append(message.name)
        self._expect("{")

        optionals: list[descriptor_pb2.FieldDescriptorProto] = []

        while self._peek().value != "}":
            token = self._peek()
            if token.value == "message":
                self._next()
                self._parse_message(message.nested_type.add())
            elif token.value == "enum":
                self._next()
                self._parse_enum(message.enum_type.add())
            elif token.value == "oneof":
                self._next()
                self._parse_oneof(message)
            elif token.value in ("option", "reserved", "extensions"):
                self._skip_statement()
            elif token.value == "extend":
                self._skip_block()
            elif token.value == "map" and self._peek(1).value == "<":
                self._parse_map_field(message)
            elif token.value == ";":
                self._next()
            else:
                field = self._parse_field(message)
                if field.proto3_optional:
                    optionals.append(field)

        self._expect("}")

        # synthetic oneofs are declared after every real one
        declared = {oneof.name for oneof in message.oneof_decl}
        for field in optionals:
            name = "_" + field.name
            while name in declared:
                name = "X" + name
            declared.add(name)
            field.oneof_index = len(message.oneof_decl)
            message.oneof_decl.add(name=name)

        self._path.pop()

    def _parse_field(
        self,
        message: descriptor_pb2.DescriptorProto,
        oneof_index: int | None = None
    ) -> descriptor_pb2.FieldDescriptorProto:
        start = self._peek()
        label = None
        if start.value in LABELS:
            if oneof_index is not None:
                raise SchemaError("Fields in oneofs must not have labels", start.line)
            label = self._next().value

        if self._peek().value == "group":
            raise SchemaError("Groups are not supported", start.line)

        type_token = self._expect_kind("ident")
        field = message.field.add(name=self._expect_simple_name())
        self._expect("=")
        field.number = self._parse_int()
        field.json_name = camel_case(field.name, upper_first=False)
        self._set_type(field, type_token)

        if self._peek().value == "[":
            self._parse_field_options(field)
        self._expect(";")

        if label is None and not self._proto3 and oneof_index is None:
            raise SchemaError(f"Field '{field.name}' requires a label", start.line)
        if label == "required" and self._proto3:
            raise SchemaError("Required fields are not allowed in proto3", start.line)

        field.label = LABELS[label or "optional"]
        if label == "optional" and self._proto3:
            field.proto3_optional = True
        if oneof_index is not None:
            field.oneof_index = oneof_index

        return field

    def _parse_map_field(self, message: descriptor_pb2.DescriptorProto) -> None:
        start = self._next()
        self._expect("<")
        key_type = self._expect_kind("ident")
        self._expect(",")
        value_type = self._expect_kind("ident")
        self._expect(">")

        if key_type.value not in MAP_KEY_TYPES:
            raise SchemaError(f"Invalid map key type '{key_type.value}'", key_type.line)

        name = self._expect_simple_name()
        entry = message.nested_type.add(name=camel_case(name, upper_first=True) + "Entry")
        entry.options.map_entry = True

        self._path.append(entry.name)
        key = entry.field.add(name="key", number=1, json_name="key", label=FieldProto.LABEL_OPTIONAL)
        self._set_type(key, key_type)
        value = entry.field.add(name="value", number=2, json_name="value", label=FieldProto.LABEL_OPTIONAL)
        self._set_type(value, value_type)
        self._path.pop()

        field = message.field.add(
            name=name,
            json_name=camel_case(name, upper_first=False),
            label=FieldProto.LABEL_REPEATED,
            type_name=entry.name,
        )
        self._lines[(".".join(self._path), name)] = start.line
        self._expect("=")
        field.number = self._parse_int()

        if self._peek().value == "[":
            self._parse_field_options(field)
        self._expect(";")

    def _parse_oneof(self, message: descriptor_pb2.DescriptorProto) -> None:
        index = len(message.oneof_decl)
        message.oneof_decl.add(name=self._expect_simple_name())
        self._expect("{")

        while self._peek().value != "}":
            if self._peek().value == "option":
                self._skip_statement()
            elif self._peek().value == ";":
                self._next()
            else:
                self._parse_field(message, oneof_index=index)

        self._expect("}")

    def _parse_enum(self, enum: descriptor_pb2.EnumDescriptorProto) -> None:
        start = self._peek()
        enum.name = self._expect_simple_name()
        self._expect("{")

        while self._peek().value != "}":
            token = self._peek()
            if token.value == "option":
                self._next()
                if self._peek().value == "allow_alias":
                    self._next()
                    self._expect("=")
                    enum.options.allow_alias = self._next().value == "true"
                    self._expect(";")
                else:
                    self._skip_statement()
            elif token.value == "reserved":
                self._skip_statement()
            elif token.value == ";":
                self._next()
            else:
                name = self._expect_simple_name()
                self._expect("=")
                enum.value.add(name=name, number=self._parse_int())
                if self._peek().value == "[":
                    self._skip_balanced("[", "]")
                self._expect(";")

        self._expect("}")

        if not enum.value:
            raise SchemaError(f"Enum '{enum.name}' has no values", start.line)
        if self._proto3 and enum.value[0].number != 0:
            raise SchemaError(f"First value of enum '{enum.name}' must be zero", start.line)

    def _parse_field_options(self, field: descriptor_pb2.FieldDescriptorProto) -> None:
        self._expect("[")
        while True:
            if self._peek().value == "(":
                self._skip_balanced("(", ")")
                if self._peek().kind == "ident" and self._peek().value.startswith("."):
                    self._next()
                name = None
            else:
                name = self._expect_kind("ident").value
            self._expect("=")
            token = self._peek()
            value = self._parse_option_value()
            if token.kind == "string" and (
                name == "json_name" or (name == "default" and field.type == FieldProto.TYPE_STRING)
            ):
                # bytes defaults stay C-escaped in the descriptor
                value = self._unescape(value, token.line)

            if name == "default":
                field.default_value = value
            elif name == "json_name":
                field.json_name = value
            elif name == "packed":
                field.options.packed = value == "true"
            elif name == "deprecated":
                field.options.deprecated = value == "true"

            if self._peek().value == ",":
                self._next()
                continue
            break
        self._expect("]")

    def _parse_option_value(self) -> str:
        token = self._peek()
        if token.value == "{":
            self._skip_balanced("{", "}")
            return ""
        if token.value == "-":
            self._next()
            return "-" + self._expect_kind("ident").value

        self._next()
        if token.kind == "string":
            return unquote(token.value)
        return token.value

    @staticmethod
    def _unescape(value: str, line: int) -> str:
        try:
            return unescape(value)
        except UnicodeDecodeError:
            raise SchemaError("String literal is not valid UTF-8", line) from None

    def _expect_string(self) -> str:
        token = self._expect_kind("string")
        return self._unescape(unquote(token.value), token.line)

    def _set_type(self, field: descriptor_pb2.FieldDescriptorProto, token: Token) -> None:
        scalar = SCALAR_TYPES.get(token.value)
        if scalar is not None:
            field.type = scalar
            return

        # resolved later, once every declaration is known
        field.type_name = token.value
        self._lines[(".".join(self._path), field.name)] = token.line

    def _resolve(self, file_proto: descriptor_pb2.FileDescriptorProto) -> None:
        symbols: dict[str, str] = {}
        self._collect(file_proto, symbols)
        for dependency in file_proto.dependency:
            self._collect(well_known_file(dependency), symbols)

        def walk(message: descriptor_pb2.DescriptorProto, path: list[str]) -> None:
            path = path + [message.name]
            scope = ".".join(filter(None, [file_proto.package, *path]))

            for field in message.field:
                if not field.type_name:
                    continue

                line = self._lines.get((".".join(path), field.name))
                full_name = self._lookup(field.type_name, scope, symbols, line)
                field.type_name = "." + full_name
                if symbols[full_name] == "enum":
                    field.type = FieldProto.TYPE_ENUM
                else:
                    field.type = FieldProto.TYPE_MESSAGE

            for nested in message.nested_type:
                walk(nested, path)

        for message in file_proto.message_type:
            walk(message, [])

    @staticmethod
    def _collect(file_proto: descriptor_pb2.FileDescriptorProto, symbols: dict[str, str]) -> None:
        parts = file_proto.package.split(".") if file_proto.package else []
        for i in range(1, len(parts) + 1):
            symbols.setdefault(".".join(parts[:i]), "package")

        def add(scope: str, message: descriptor_pb2.DescriptorProto) -> None:
            name = f"{scope}.{message.name}" if scope else message.name
            symbols[name] = "message"
            for enum in message.enum_type:
                symbols[f"{name}.{enum.name}"] = "enum"
            for nested in message.nested_type:
                add(name, nested)

        for enum in file_proto.enum_type:
            name = f"{file_proto.package}.{enum.name}" if file_proto.package else enum.name
            symbols[name] = "enum"
        for message in file_proto.message_type:
            add(file_proto.package, message)

    @staticmethod
    def _lookup(reference: str, scope: str, symbols: dict[str, str], line: int | None) -> str:
        """
        Resolve `reference` the way protoc does: the first component is
        searched from the innermost scope outward, and the remainder must
        then resolve inside the first match.
        """
        if reference.startswith("."):
            candidate = reference[1:]
            if symbols.get(candidate) in ("message", "enum"):
                return candidate
            raise SchemaError(f"Unknown type '{reference}'", line)

        first = reference.split(".", 1)[0]
        scopes = scope.split(".") if scope else []

        for i in range(len(scopes), -1, -1):
            prefix = ".".join(scopes[:i])
            head = f"{prefix}.{first}" if prefix else first
            if head not in symbols:
                continue

            candidate = f"{prefix}.{reference}" if prefix else reference
            if symbols.get(candidate) in ("message", "enum"):
                return candidate
            if candidate == head:
                # a package name was referenced as a type
                continue
            raise SchemaError(f"Unknown type '{reference}'", line)

        raise SchemaError(f"Unknown type '{reference}'", line)

    def _skip_statement(self) -> None:
        depth = 0
        while True:
            token = self._next()
            if token.value == "{":
                depth += 1
            elif token.value == "}":
                depth -= 1
            elif token.value == ";" and depth == 0:
                return

    def _skip_block(self) -> None:
        while self._peek().value not in ("{", ";"):
            self._next()
        if self._peek().value == ";":
            self._next()
            return
        self._skip_balanced("{", "}")

    def _skip_balanced(self, opening: str, closing: str) -> None:
        self._expect(opening)
        depth = 1
        while depth:
            token = self._next()
            if token.value == opening:
                depth += 1
            elif token.value == closing:
                depth -= 1

    def _parse_int(self) -> int:
        token = self._expect_kind("number")
        value = token.value
        sign = -1 if value.startswith("-") else 1
        digits = value.lstrip("+-")

        try:
            if digits[:2].lower() == "0x":
                return sign * int(digits, 16)
            if len(digits) > 1 and digits.startswith("0"):
                return sign * int(digits, 8)
            return sign * int(digits)
        except ValueError:
            raise SchemaError(f"Expected an integer, got '{value}'", token.line) from None

    def _expect_simple_name(self) -> str:
        token = self._expect_kind("ident")
        if "." in token.value:
            raise SchemaError(f"Expected a simple name, got '{token.value}'", token.line)
        return token.value

    def _expect(self, value: str) -> Token:
        token = self._next()
        if token.value != value:
            raise SchemaError(f"Expected '{value}', got '{token.value}'", token.line)
        return token

    def _expect_kind(self, kind: str) -> Token:
        token = self._next()
        if token.kind != kind:
            raise SchemaError(f"Expected {kind}, got '{token.value}'", token.line)
        return token

    def _eof(self) -> bool:
        return self._pos >= len(self._tokens)

    def _peek(self, offset: int = 0) -> Token:
        index = self._pos + offset
        if index >= len(self._tokens):
            last = self._tokens[-1].line if self._tokens else 1
            return Token("eof", "", last)
        return self._tokens[index]

    def _next(self) -> Token:
        token = self._peek()
        if token.kind == "eof":
            raise SchemaError("Unexpected end of schema", token.line)
        self._pos += 1
        return token


def parse_schema(text: str, name: str = "schema.proto") -> descriptor_pb2.FileDescriptorProto:
    return SchemaParser(text, name).parse()
