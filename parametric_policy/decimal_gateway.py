# ============================================================================
# Parametric Policy
# Decimal Gateway - Fixed-Point Amount Handling
# ============================================================================
#
# Purpose: Ensures all monetary amounts use decimal.Decimal with ROUND_HALF_EVEN
#
# MANDATE:
#   - All amounts entering the engine MUST pass through this gateway
#   - Float contamination is FORBIDDEN in payment verification
#   - Amounts carry 18 decimal places (fixed-point base 10^18)
#   - Oracle prices carry 8 decimal places
#
# Error Codes:
#   - POL-070: Amount conversion failed
#
# ============================================================================

from decimal import Context, Decimal, ROUND_HALF_EVEN, InvalidOperation
from typing import Optional, Union
import logging

logger = logging.getLogger(__name__)


# Fixed-point base: one whole unit is 10^18 base units
BASE_UNIT_DECIMALS = 18
BASE_UNIT_SCALE = 10 ** BASE_UNIT_DECIMALS

# Wide enough for any uint256 value
_CONTEXT = Context(prec=80, rounding=ROUND_HALF_EVEN)


class DecimalGateway:
    """
    Central conversion layer for policy amounts.

    Example Usage:
        gateway = DecimalGateway()

        premium = gateway.to_amount("1000")              # Decimal('1000.000...')
        units = gateway.to_base_units(premium)           # 1000 * 10**18
        back = gateway.from_base_units(units)            # Decimal('1000.000...')
        price = gateway.to_price(1834.123456789)         # Decimal('1834.12345679')
    """

    AMOUNT_PRECISION = Decimal(1).scaleb(-BASE_UNIT_DECIMALS)  # 18 places
    PRICE_PRECISION = Decimal('0.00000001')                    # 8 places

    def to_decimal(
        self,
        value: Union[str, int, float, Decimal, None],
        precision: Optional[Decimal] = None,
        field_name: str = "amount"
    ) -> Decimal:
        """
        Convert any numeric value to Decimal with ROUND_HALF_EVEN.

        Floats are converted via str() so 0.1 stays 0.1.

        Args:
            value: Numeric value to convert (None is treated as zero)
            precision: Quantum to round to (default: AMOUNT_PRECISION)
            field_name: Field name for the error log

        Returns:
            Quantized Decimal

        Raises:
            ValueError: If value cannot be converted or is not finite
        """
        if precision is None:
            precision = self.AMOUNT_PRECISION

        if value is None:
            return Decimal('0').quantize(precision, context=_CONTEXT)

        try:
            if isinstance(value, Decimal):
                decimal_value = value
            else:
                decimal_value = Decimal(str(value).strip())

            if not decimal_value.is_finite():
                raise ValueError(f"non-finite value {value}")

            return decimal_value.quantize(precision, context=_CONTEXT)

        except (InvalidOperation, ValueError, TypeError) as e:
            logger.error(
                f"[POL-070] Decimal conversion failed | "
                f"field={field_name} | value={value!r} | "
                f"type={type(value).__name__} | error={e}"
            )
            raise ValueError(
                f"POL-070: Cannot convert {field_name}={value!r} to Decimal"
            ) from e

    def to_amount(
        self,
        value: Union[str, int, float, Decimal, None],
        field_name: str = "amount"
    ) -> Decimal:
        """Convert value to a whole-unit amount with 18 decimal places."""
        return self.to_decimal(value, self.AMOUNT_PRECISION, field_name)

    def to_price(
        self,
        value: Union[str, int, float, Decimal, None],
        field_name: str = "price"
    ) -> Decimal:
        """Convert value to an oracle price with 8 decimal places."""
        return self.to_decimal(value, self.PRICE_PRECISION, field_name)

    def to_base_units(self, amount: Union[str, int, float, Decimal]) -> int:
        """
        Convert a whole-unit amount to integer base units (x 10^18).

        Sub-base-unit fractions are rounded ROUND_HALF_EVEN.
        """
        decimal_amount = self.to_amount(amount)
        return int(
            decimal_amount.scaleb(BASE_UNIT_DECIMALS, context=_CONTEXT)
            .to_integral_value(rounding=ROUND_HALF_EVEN)
        )

    def from_base_units(self, units: int) -> Decimal:
        """Convert integer base units back to a whole-unit amount."""
        if isinstance(units, bool) or not isinstance(units, int):
            raise ValueError(f"POL-070: base units must be int, got {type(units).__name__}")
        return Decimal(units).scaleb(-BASE_UNIT_DECIMALS, context=_CONTEXT).quantize(
            self.AMOUNT_PRECISION, context=_CONTEXT
        )

    def scale_feed_answer(self, answer: int, decimals: int) -> Decimal:
        """Convert an integer feed answer with `decimals` places to a price."""
        if decimals < 0:
            raise ValueError(f"POL-070: feed decimals must be >= 0, got {decimals}")
        return self.to_price(Decimal(answer).scaleb(-decimals, context=_CONTEXT))

    def multiply(self, left: Decimal, right: Decimal, precision: Optional[Decimal] = None) -> Decimal:
        """Multiply two Decimals in the wide context and quantize the product."""
        if precision is None:
            precision = self.AMOUNT_PRECISION
        return _CONTEXT.multiply(left, right).quantize(precision, context=_CONTEXT)


# ============================================================================
# Module-level convenience functions
# ============================================================================

_gateway = DecimalGateway()


def to_amount(value: Union[str, int, float, Decimal, None], field_name: str = "amount") -> Decimal:
    """Module-level convenience function for amount conversion."""
    return _gateway.to_amount(value, field_name)


def to_price(value: Union[str, int, float, Decimal, None], field_name: str = "price") -> Decimal:
    """Module-level convenience function for price conversion."""
    return _gateway.to_price(value, field_name)


def to_base_units(amount: Union[str, int, float, Decimal]) -> int:
    """Module-level convenience function for base-unit conversion."""
    return _gateway.to_base_units(amount)


def from_base_units(units: int) -> Decimal:
    """Module-level convenience function for base-unit conversion."""
    return _gateway.from_base_units(units)
