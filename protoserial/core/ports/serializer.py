from typing import Protocol, Any


class Serializer(Protocol):
    """
    Defines the interface for encoding/decoding schema-backed messages
    exchanged by the RPC layer.

    Implementations must be:
    - deterministic
    - pure (no side effects)
    - strict about the values they accept
    """

    def marshal(self, value: Any) -> bytes:
        """Encode a message into bytes suitable for network transport."""

    def unmarshal(self, data: bytes, destination: Any) -> None:
        """Decode bytes received from the network into `destination`."""
