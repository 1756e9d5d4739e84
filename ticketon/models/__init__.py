# ticketon/models/__init__.py
# Import all models here so SQLAlchemy registers them into Base.metadata.

from ticketon.models.user import User  # noqa: F401
from ticketon.models.event import Event  # noqa: F401

from ticketon.models.voucher import Voucher  # noqa: F401
from ticketon.models.coupon import Coupon  # noqa: F401
from ticketon.models.point import Point  # noqa: F401

from ticketon.models.transaction import Transaction, TransactionStatus  # noqa: F401
from ticketon.models.transaction_item import TransactionItem  # noqa: F401
