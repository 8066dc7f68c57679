from __future__ import annotations


class BillingError(Exception):
    pass


class RefundValidationError(BillingError, ValueError):
    """Refund request broke one or more amount/state rules.

    All violated rules are carried in ``errors``, not just the first one.
    """

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("Refund validation failed: " + ", ".join(self.errors))


class NotFoundError(BillingError, LookupError):
    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class InvalidStateError(BillingError):
    pass


class StorageError(BillingError):
    pass


class NotificationError(BillingError):
    pass
