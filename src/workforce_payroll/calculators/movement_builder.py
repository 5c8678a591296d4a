"""Movement amount computation with cent rounding."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from workforce_payroll.calculators.types import CalcMode
from workforce_payroll.errors import ValidationError


@dataclass(frozen=True)
class MovementAmounts:
    """Resolved quantity, rate and total for a movement."""

    total_value: Decimal
    quantity: Decimal | None = None
    rate: Decimal | None = None


class MovementBuilder:
    """Computes movement totals.

    Rounding:
    - total_value is rounded to 2 decimals here, once
    - rollups sum persisted totals and never re-round
    - quantity and rate are kept as given
    """

    OUTPUT_PRECISION = Decimal("0.01")

    @staticmethod
    def round_to_cents(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places (cents)."""
        return amount.quantize(MovementBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def to_decimal(value: Any, field: str) -> Decimal | None:
        """Coerce a number-like input to Decimal; None and "" stay None."""
        if value is None or value == "":
            return None
        if isinstance(value, Decimal):
            return value
        try:
            # str() first so floats like 12.5 do not carry binary noise
            return Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValidationError(f"'{value}' is not a valid number", field=field) from e

    @classmethod
    def compute(
        cls,
        calc_mode: str,
        *,
        quantity: Any = None,
        rate: Any = None,
        total_value: Any = None,
        default_rate: Any = None,
    ) -> MovementAmounts:
        """Resolve a movement's amounts for its concept's calculation mode.

        quantity_x_rate: total = round(quantity x rate), with rate falling back
        to the concept default. manual_value: total is taken as supplied.
        A zero total is rejected in both modes.
        """
        qty = cls.to_decimal(quantity, "quantity")
        rt = cls.to_decimal(rate, "rate")

        if calc_mode == CalcMode.QUANTITY_X_RATE:
            if rt is None:
                rt = cls.to_decimal(default_rate, "rate")
            if qty is None:
                raise ValidationError("Quantity is required for quantity x rate concepts", field="quantity")
            if rt is None:
                raise ValidationError(
                    "Rate is required when the concept has no default rate", field="rate"
                )
            total = cls.round_to_cents(qty * rt)
        elif calc_mode == CalcMode.MANUAL_VALUE:
            supplied = cls.to_decimal(total_value, "total_value")
            if supplied is None:
                raise ValidationError("Total value is required for manual concepts", field="total_value")
            total = cls.round_to_cents(supplied)
        else:
            raise ValidationError(f"Unknown calculation mode '{calc_mode}'", field="calc_mode")

        if total == 0:
            raise ValidationError("Movement total must not be zero", field="total_value")

        return MovementAmounts(total_value=total, quantity=qty, rate=rt)
