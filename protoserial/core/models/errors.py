class WrongValueTypeError(TypeError):
    """
    Raised when a value handed to the serializer is not a schema-backed
    message (marshal), or not a mutable message instance (unmarshal).
    """

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"wrong value type: {type(value).__name__}")


class MalformedMappingError(ValueError):
    """The route mapping is not a JSON object of route descriptors."""


class SchemaError(ValueError):
    """The schema text cannot be compiled into message types."""

    def __init__(self, message: str, line: int | None = None) -> None:
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


class UnknownRouteError(LookupError):
    """The route is not declared in the mapping."""

    def __init__(self, route: str) -> None:
        self.route = route
        super().__init__(f"Route '{route}' is not mapped")
