from __future__ import annotations

from typing import Any, Tuple

from .errors import INVALID_CONTRACT_YEARS, INVALID_FEE, INVALID_WAGE, ValidationError

MAX_FEE = 1_000_000_000
MAX_WAGE = 10_000_000
MIN_CONTRACT_YEARS = 1
MAX_CONTRACT_YEARS = 5


def _as_int(value: Any, code: str, label: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(code, f"{label} must be a number")
    try:
        f = float(value)
    except (TypeError, ValueError):
        raise ValidationError(code, f"{label} must be a number", {"value": value})
    if f != f or f in (float("inf"), float("-inf")):
        raise ValidationError(code, f"{label} must be finite", {"value": value})
    return int(round(f))


def validate_terms(fee: Any, wage: Any, years: Any) -> Tuple[int, int, int]:
    """Range-check offer terms; returns them as ints.

    The HTTP layer enforces the same bounds; this keeps direct callers honest.
    """
    fee_i = _as_int(fee, INVALID_FEE, "fee")
    if not 0 <= fee_i <= MAX_FEE:
        raise ValidationError(INVALID_FEE, f"fee must be within [0, {MAX_FEE}]", {"fee": fee_i})
    wage_i = _as_int(wage, INVALID_WAGE, "wage")
    if not 0 <= wage_i <= MAX_WAGE:
        raise ValidationError(INVALID_WAGE, f"wage must be within [0, {MAX_WAGE}]", {"wage": wage_i})
    years_i = _as_int(years, INVALID_CONTRACT_YEARS, "contract_years")
    if not MIN_CONTRACT_YEARS <= years_i <= MAX_CONTRACT_YEARS:
        raise ValidationError(
            INVALID_CONTRACT_YEARS,
            f"contract_years must be within [{MIN_CONTRACT_YEARS}, {MAX_CONTRACT_YEARS}]",
            {"contract_years": years_i},
        )
    return fee_i, wage_i, years_i


def validate_fee(fee: Any) -> int:
    fee_i = _as_int(fee, INVALID_FEE, "fee")
    if not 0 <= fee_i <= MAX_FEE:
        raise ValidationError(INVALID_FEE, f"fee must be within [0, {MAX_FEE}]", {"fee": fee_i})
    return fee_i


def validate_wage(wage: Any) -> int:
    wage_i = _as_int(wage, INVALID_WAGE, "wage")
    if not 0 <= wage_i <= MAX_WAGE:
        raise ValidationError(INVALID_WAGE, f"wage must be within [0, {MAX_WAGE}]", {"wage": wage_i})
    return wage_i
