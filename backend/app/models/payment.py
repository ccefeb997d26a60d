"""Enumerations describing how a session was paid for and billed."""

from __future__ import annotations

import enum

from sqlalchemy import Enum


class PaymentMethod(str, enum.Enum):
    """Ways a client can pay for a session."""

    CARD = "card"
    CASH = "cash"
    TRANSFER = "transfer"
    PLATFORM = "platform"


class PaymentType(str, enum.Enum):
    """Billing arrangement with a client; decides whether receipts are owed."""

    SELF_EMPLOYED = "self-employed"
    IP = "ip"
    CASH = "cash"
    PLATFORM = "platform"


def _enum_column_type(enum_cls: type[enum.Enum], name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
        native_enum=False,
        validate_strings=True,
        length=32,
    )


PAYMENT_METHOD_ENUM = _enum_column_type(PaymentMethod, "payment_method_enum")
PAYMENT_TYPE_ENUM = _enum_column_type(PaymentType, "payment_type_enum")
