from enum import StrEnum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class Side(StrEnum):
    """
    Selects which message type of a route is used.
    """
    server = "server"
    client = "client"


class RouteEntry(BaseModel):
    """
    Structural descriptor associated with a route name in the mapping.
    """
    model_config = ConfigDict(extra="allow", frozen=True)

    server: Annotated[
        str,
        Field(
            description=(
                "Message type decoded by the server for this route.\n"
                "Resolved relative to the schema package, or fully qualified "
                "when prefixed with a dot."
            ),
            min_length=1
        )
    ]

    client: Annotated[
        str | None,
        Field(
            description="Message type sent back to the client, if any.",
            default=None
        )
    ]

    def type_name(self, side: Side) -> str | None:
        return self.server if side == Side.server else self.client


RouteMapping = TypeAdapter(dict[str, RouteEntry])
"""
Validator for the whole mapping document: a flat JSON object whose keys
are route names and whose values are route descriptors.
"""
