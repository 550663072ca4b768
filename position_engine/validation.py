"""
Position Engine - Creation Request Validation.

============================================================
PURPOSE
============================================================
Validates position creation requests before any order is
placed.

VALIDATION STEPS:
1. Currency pair present, base differs from quote
2. Amount strictly positive
3. Rule percentages, when set, not negative

An invalid request never reaches the order executor.

============================================================
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .money import CurrencyPair
from .types import PositionRules


logger = logging.getLogger(__name__)


# ============================================================
# VALIDATION RESULT
# ============================================================

@dataclass
class ValidationResult:
    """Result of request validation."""

    is_valid: bool
    """Whether validation passed."""

    error_code: Optional[str] = None
    """Error code if invalid."""

    error_message: Optional[str] = None
    """Error message if invalid."""

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(is_valid=True)

    @classmethod
    def invalid(cls, error_code: str, error_message: str) -> "ValidationResult":
        return cls(is_valid=False, error_code=error_code, error_message=error_message)


# ============================================================
# VALIDATOR
# ============================================================

class PositionRequestValidator:
    """
    Validates position creation requests.

    Stateless; steps run in order and the first failure wins.
    """

    def validate(
        self,
        currency_pair: Optional[CurrencyPair],
        amount: Optional[Decimal],
        rules: Optional[PositionRules],
    ) -> ValidationResult:
        """
        Validate a creation request.

        Args:
            currency_pair: Pair to open a position on
            amount: Amount in base currency
            rules: Stop rules, may be None

        Returns:
            ValidationResult
        """
        for result in (
            self._validate_pair(currency_pair),
            self._validate_amount(amount),
            self._validate_rules(rules),
        ):
            if not result.is_valid:
                logger.warning(
                    f"Position request rejected: [{result.error_code}] {result.error_message}"
                )
                return result
        return ValidationResult.ok()

    # --------------------------------------------------------
    # STEPS
    # --------------------------------------------------------

    def _validate_pair(self, currency_pair: Optional[CurrencyPair]) -> ValidationResult:
        if currency_pair is None:
            return ValidationResult.invalid("VAL_INVALID_PAIR", "Currency pair is required")
        if currency_pair.base == currency_pair.quote:
            return ValidationResult.invalid(
                "VAL_INVALID_PAIR",
                f"Base and quote are both {currency_pair.base}",
            )
        return ValidationResult.ok()

    def _validate_amount(self, amount: Optional[Decimal]) -> ValidationResult:
        if amount is None or amount <= 0:
            return ValidationResult.invalid(
                "VAL_INVALID_AMOUNT",
                f"Amount must be positive, got {amount}",
            )
        return ValidationResult.ok()

    def _validate_rules(self, rules: Optional[PositionRules]) -> ValidationResult:
        if rules is None:
            return ValidationResult.ok()
        if rules.is_stop_gain_set() and rules.stop_gain_percentage < 0:
            return ValidationResult.invalid(
                "VAL_INVALID_RULES",
                f"Stop gain percentage is negative: {rules.stop_gain_percentage}",
            )
        if rules.is_stop_loss_set() and rules.stop_loss_percentage < 0:
            return ValidationResult.invalid(
                "VAL_INVALID_RULES",
                f"Stop loss percentage is negative: {rules.stop_loss_percentage}",
            )
        return ValidationResult.ok()
