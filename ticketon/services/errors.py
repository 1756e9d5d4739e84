from __future__ import annotations


class TransactionError(Exception):
    """Base class for every failure the transaction core reports.

    ``status_code`` is the HTTP status the routers translate it to.
    """

    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# -------------------------
# Not found
# -------------------------
class NotFound(TransactionError):
    status_code = 404


class EventNotFound(NotFound):
    pass


class TransactionNotFound(NotFound):
    pass


class CouponNotFound(NotFound):
    pass


# -------------------------
# Forbidden
# -------------------------
class Forbidden(TransactionError):
    status_code = 403


class NotOwner(Forbidden):
    pass


class NotOrganizer(Forbidden):
    pass


# -------------------------
# State / resources
# -------------------------
class InvalidState(TransactionError):
    status_code = 409


class TransactionExpired(TransactionError):
    status_code = 410


class InsufficientSeats(TransactionError):
    pass


class InsufficientPoints(TransactionError):
    pass


class VoucherInvalid(TransactionError):
    pass


class VoucherExhausted(VoucherInvalid):
    pass


class CouponExpired(TransactionError):
    pass


class CouponAlreadyUsed(TransactionError):
    pass
