# ============================================================================
# Capledger v1.0.0
# Amount Converter - Exact Display <-> Base-Unit Conversion
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Every amount handed to the ledger passes through this converter
#
# SOVEREIGN MANDATE:
#   - Integer arithmetic only, float input is FORBIDDEN
#   - Excess fractional precision is TRUNCATED, never rounded
#   - 9 decimal places by default (1 token = 1,000,000,000 base units)
#   - Amounts never exceed the u64 range accepted by the ledger
#
# Error Codes:
#   - AMT-001: Invalid amount format
#   - AMT-002: Zero amount
#   - AMT-003: Negative amount
#   - AMT-004: Exceeds max supply
#
# ============================================================================

import re
import logging
from decimal import Decimal
from typing import Optional, Union

from capledger.errors import (
    InvalidAmountFormatError,
    ZeroAmountError,
    NegativeAmountError,
    ExceedsMaxSupplyError,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

DEFAULT_DECIMALS = 9
U64_MAX = 2 ** 64 - 1

# sign, integer digits, fractional digits
_DISPLAY_PATTERN = re.compile(r"^([+-]?)(\d*)(?:\.(\d*))?$", re.ASCII)
_BASE_UNIT_PATTERN = re.compile(r"^([+-]?)(\d+)$", re.ASCII)


class AmountConverter:
    """
    Display amount to base-unit converter.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: Decimal strings, int, or decimal.Decimal (never float)
    Side Effects: Logs AMT-001 on conversion failure

    Example Usage:
        converter = AmountConverter()

        converter.to_base_units("1.5")            # 1500000000
        converter.to_base_units("1.0000000005")   # 1000000000 (truncated)
        converter.to_display(1500000000)          # "1.5"
        converter.validate(0, allow_zero=False)   # raises ZeroAmountError
    """

    def __init__(self, decimals: int = DEFAULT_DECIMALS):
        if decimals < 0:
            raise ValueError(f"decimals must be non-negative, got {decimals}")
        self.decimals = decimals

    def to_base_units(
        self,
        value: Union[str, int, Decimal],
        decimals: Optional[int] = None,
        correlation_id: Optional[str] = None
    ) -> int:
        """
        Convert a display amount to integer base units.

        Reliability Level: SOVEREIGN TIER
        Input Constraints: Plain decimal string ("12", "0.5", ".5", "3."),
            int (whole display units) or decimal.Decimal
        Side Effects: Logs AMT-001 on failure

        The fractional part is padded or truncated to exactly `decimals`
        digits, so conversion depends only on the first `decimals`
        fractional digits.

        Args:
            value: Display amount
            decimals: Decimal places (default: converter decimals)
            correlation_id: Audit trail identifier

        Returns:
            Amount in base units

        Raises:
            InvalidAmountFormatError: If value is not a plain decimal number
            NegativeAmountError: If value is negative
        """
        if decimals is None:
            decimals = self.decimals

        text = self._normalize_input(value, correlation_id)
        match = _DISPLAY_PATTERN.match(text)
        if match is None or not (match.group(2) or match.group(3)):
            self._log_format_failure(value, correlation_id)
            raise InvalidAmountFormatError(
                f"Cannot convert '{value}' to base units",
                context={"value": str(value), "correlation_id": correlation_id}
            )

        sign, whole, fraction = match.group(1), match.group(2), match.group(3) or ""
        fraction = fraction[:decimals].ljust(decimals, "0")
        amount = int(whole or "0") * (10 ** decimals) + int(fraction or "0")

        if sign == "-" and amount != 0:
            raise NegativeAmountError(
                f"Amount '{value}' is negative",
                context={"value": str(value), "correlation_id": correlation_id}
            )
        return amount

    def parse_base_units(
        self,
        value: Union[str, int],
        correlation_id: Optional[str] = None
    ) -> int:
        """
        Parse an amount that is already expressed in base units.

        Raises:
            InvalidAmountFormatError: If value is not an integer string/int
            NegativeAmountError: If value is negative
        """
        if isinstance(value, bool):
            raise InvalidAmountFormatError(
                "Boolean is not a base-unit amount",
                context={"correlation_id": correlation_id}
            )
        if isinstance(value, int):
            amount = value
        else:
            match = _BASE_UNIT_PATTERN.match(str(value).strip())
            if match is None:
                self._log_format_failure(value, correlation_id)
                raise InvalidAmountFormatError(
                    f"Cannot parse '{value}' as base units",
                    context={"value": str(value), "correlation_id": correlation_id}
                )
            amount = int(match.group(2))
            if match.group(1) == "-":
                amount = -amount

        if amount < 0:
            raise NegativeAmountError(
                f"Amount {amount} is negative",
                context={"value": str(value), "correlation_id": correlation_id}
            )
        return amount

    def to_display(self, amount: int, decimals: Optional[int] = None) -> str:
        """
        Render base units as a canonical display string.

        Presentation only. Trailing fractional zeros are dropped, so
        to_display(1000000000) == "1" and to_display(1500000000) == "1.5".

        Raises:
            InvalidAmountFormatError: If amount is not an int
            NegativeAmountError: If amount is negative
        """
        if decimals is None:
            decimals = self.decimals
        self._require_int(amount)
        if amount < 0:
            raise NegativeAmountError(f"Amount {amount} is negative")

        scale = 10 ** decimals
        whole, fraction = divmod(amount, scale)
        if decimals == 0 or fraction == 0:
            return str(whole)
        fraction_text = str(fraction).rjust(decimals, "0").rstrip("0")
        return f"{whole}.{fraction_text}"

    def format_amount(
        self,
        amount: int,
        symbol: Optional[str] = None,
        decimals: Optional[int] = None
    ) -> str:
        """
        Format base units with thousands separators.

        Returns:
            Formatted string like "1,234.5 HETRA"
        """
        display = self.to_display(amount, decimals)
        whole, _, fraction = display.partition(".")
        formatted = f"{int(whole):,}"
        if fraction:
            formatted = f"{formatted}.{fraction}"
        if symbol:
            return f"{formatted} {symbol}"
        return formatted

    def validate(
        self,
        amount: int,
        allow_zero: bool = False,
        max_supply: Optional[int] = None,
        current_supply: int = 0,
        correlation_id: Optional[str] = None
    ) -> int:
        """
        Validate a base-unit amount before it is handed to the ledger.

        Reliability Level: SOVEREIGN TIER
        Input Constraints: amount must be an int
        Side Effects: Logs the failing rule

        Args:
            amount: Amount in base units
            allow_zero: Whether zero is acceptable
            max_supply: Optional supply cap supplied by configuration
            current_supply: Supply already in circulation
            correlation_id: Audit trail identifier

        Returns:
            The validated amount

        Raises:
            InvalidAmountFormatError: If amount is not an int or exceeds u64
            NegativeAmountError: If amount < 0
            ZeroAmountError: If amount == 0 and zero is disallowed
            ExceedsMaxSupplyError: If current_supply + amount > max_supply
        """
        self._require_int(amount)

        if amount < 0:
            logger.error(
                f"[AMT-003] Negative amount | amount={amount} | "
                f"correlation_id={correlation_id}"
            )
            raise NegativeAmountError(
                f"Amount {amount} is negative",
                context={"amount": amount, "correlation_id": correlation_id}
            )

        if amount == 0 and not allow_zero:
            logger.error(
                f"[AMT-002] Zero amount rejected | correlation_id={correlation_id}"
            )
            raise ZeroAmountError(
                "Amount must be greater than zero",
                context={"correlation_id": correlation_id}
            )

        if amount > U64_MAX:
            raise InvalidAmountFormatError(
                f"Amount {amount} exceeds the u64 range",
                context={"amount": amount, "correlation_id": correlation_id}
            )

        if max_supply is not None and current_supply + amount > max_supply:
            logger.error(
                f"[AMT-004] Amount exceeds max supply | amount={amount} | "
                f"current_supply={current_supply} | max_supply={max_supply} | "
                f"correlation_id={correlation_id}"
            )
            raise ExceedsMaxSupplyError(
                f"Amount {amount} would raise supply from {current_supply} "
                f"past the cap of {max_supply}",
                context={
                    "amount": amount,
                    "current_supply": current_supply,
                    "max_supply": max_supply,
                    "correlation_id": correlation_id,
                }
            )

        return amount

    # ========================================================================
    # Internal Methods
    # ========================================================================

    def _normalize_input(
        self,
        value: Union[str, int, Decimal],
        correlation_id: Optional[str]
    ) -> str:
        # bool is an int subclass and float loses precision
        if isinstance(value, (bool, float)) or value is None:
            self._log_format_failure(value, correlation_id)
            raise InvalidAmountFormatError(
                f"Unsupported amount type {type(value).__name__}",
                context={"value": str(value), "correlation_id": correlation_id}
            )
        if isinstance(value, Decimal):
            if not value.is_finite():
                raise InvalidAmountFormatError(f"Amount '{value}' is not finite")
            return format(value, "f")
        return str(value).strip()

    @staticmethod
    def _require_int(amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidAmountFormatError(
                f"Base-unit amount must be int, got {type(amount).__name__}"
            )

    @staticmethod
    def _log_format_failure(value, correlation_id: Optional[str]) -> None:
        logger.error(
            f"[AMT-001] Amount conversion failed | "
            f"value={value!r} | type={type(value).__name__} | "
            f"correlation_id={correlation_id}"
        )
