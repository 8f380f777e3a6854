"""Error hierarchy shared by the transport and the reconciliation engine."""
from typing import Any, Optional


class OpnError(Exception):
    """Base class for all opncraft errors."""
    pass


class TransportError(OpnError):
    """Connectivity, authentication or protocol failure talking to a device."""

    def __init__(self, message: str, device_id: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.device_id = device_id
        self.status_code = status_code


class MutationError(OpnError):
    """The device accepted a create/update/delete call but did not confirm it."""

    def __init__(
        self,
        kind: str,
        operation: str,
        name: str,
        device: str,
        identifier: Optional[str] = None,
        response: Any = None,
    ):
        self.kind = kind
        self.operation = operation
        self.name = name
        self.device = device
        self.identifier = identifier
        self.response = response

        where = f" ({identifier})" if identifier else ""
        super().__init__(
            f"{kind}: failed to {operation} '{name}'{where} on '{device}': {response!r}"
        )


class ReferenceLookupError(OpnError, LookupError):
    """A cross-reference required before a mutation could not be resolved."""

    def __init__(self, message: str, kind: str = "", device: str = "", reference: str = ""):
        super().__init__(message)
        self.kind = kind
        self.device = device
        self.reference = reference
