"""
MFJ Tax Estimator - Data Models
===============================
Pydantic models for policy tables, estimate inputs and estimate results.

These models serve as the contract between:
- Versioned policy-table YAML files
- The estimation engine
- The HTTP API and Streamlit front end
"""

import math
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class PolicyTableError(ValueError):
    """A policy table is missing or malformed."""


# =============================================================================
# ENUMS
# =============================================================================

class EstimateProfile(str, Enum):
    FULL = "full"
    REDUCED = "reduced"


class CamelModel(BaseModel):
    """Serializes with camelCase names, accepts either spelling on input."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# POLICY TABLE
# =============================================================================

class TaxBracket(BaseModel):
    """One marginal bracket: income up to upper_bound is taxed at rate."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    upper_bound: float = Field(gt=0)
    rate: float = Field(ge=0, le=1)

    @field_validator("upper_bound", mode="before")
    @classmethod
    def none_means_unbounded(cls, v):
        return float("inf") if v is None else v


class PolicyTable(BaseModel):
    """
    Per-tax-year constant table for Married Filing Jointly.

    Loaded once per process and never mutated. Every engine call takes
    the table as an explicit argument.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    tax_year: int = Field(ge=1913)
    standard_deduction: float = Field(ge=0)
    ordinary_brackets: Tuple[TaxBracket, ...]

    # Top of the 0% and 15% long-term gain bands, in ordinary taxable income
    capital_gains_zero_top: float = Field(ge=0)
    capital_gains_fifteen_top: float = Field(ge=0)

    salt_base_cap: float = Field(ge=0)
    salt_floor_cap: float = Field(ge=0)
    salt_phaseout_start_magi: float = Field(ge=0)
    salt_phaseout_rate: float = Field(ge=0, le=1)

    ctc_per_child: float = Field(ge=0)
    ctc_phaseout_start_magi: float = Field(ge=0)
    ctc_phaseout_step_size: float = Field(gt=0)
    ctc_phaseout_amount_per_step: float = Field(ge=0)

    niit_threshold_magi: float = Field(ge=0)
    niit_rate: float = Field(ge=0, le=1)

    charitable_cash_agi_cap_fraction: float = Field(ge=0, le=1)
    qualifying_children_under_17: int = Field(ge=0)

    @field_validator("ordinary_brackets", mode="before")
    @classmethod
    def parse_bracket_pairs(cls, v):
        """Accept [upper_bound, rate] pairs as written in the YAML files."""
        if not isinstance(v, (list, tuple)):
            return v
        parsed = []
        for item in v:
            if isinstance(item, (list, tuple)) and len(item) == 2:
                parsed.append({"upper_bound": item[0], "rate": item[1]})
            else:
                parsed.append(item)
        return parsed

    @field_validator("ordinary_brackets")
    @classmethod
    def brackets_cover_all_income(cls, brackets: Tuple[TaxBracket, ...]) -> Tuple[TaxBracket, ...]:
        """Brackets must partition [0, inf) with strictly increasing bounds."""
        if not brackets:
            raise ValueError("at least one bracket is required")

        prev_bound = 0.0
        for i, bracket in enumerate(brackets):
            if bracket.upper_bound <= prev_bound:
                raise ValueError(
                    f"bracket {i} upper bound {bracket.upper_bound} does not "
                    f"exceed previous bound {prev_bound}"
                )
            is_last = i == len(brackets) - 1
            if math.isinf(bracket.upper_bound) and not is_last:
                raise ValueError(f"bracket {i} is unbounded but is not the last bracket")
            prev_bound = bracket.upper_bound

        if not math.isinf(brackets[-1].upper_bound):
            raise ValueError(
                f"last bracket must be unbounded (.inf), got {brackets[-1].upper_bound}"
            )
        return brackets

    @model_validator(mode="after")
    def thresholds_are_ordered(self):
        if self.capital_gains_fifteen_top < self.capital_gains_zero_top:
            raise ValueError(
                "capital_gains_fifteen_top must not be below capital_gains_zero_top"
            )
        if self.salt_floor_cap > self.salt_base_cap:
            raise ValueError("salt_floor_cap must not exceed salt_base_cap")
        return self


# =============================================================================
# ESTIMATE INPUT (normalized)
# =============================================================================

AMOUNT_FIELDS = (
    "ordinary_income",
    "long_term_gains",
    "dividends",
    "charitable_cash_given",
    "salt_paid",
)


# Largest amount accepted; anything bigger is clamped down to it
MAX_AMOUNT = 1e15


def _scale_thousands(v: Any) -> Any:
    if v is None:
        return 0.0
    try:
        amount = float(v)
    except (TypeError, ValueError):
        return v
    if math.isfinite(amount) and amount > MAX_AMOUNT / 1000:
        return MAX_AMOUNT
    # Whole cents, so parts that sum to a round number stay round
    return round(amount * 1000, 2)


class EstimateInput(BaseModel):
    """
    One estimate request in whole dollars.

    Every amount is clamped to a non-negative finite number: missing,
    negative, NaN and infinite values all become 0, and finite amounts
    above MAX_AMOUNT become MAX_AMOUNT.
    """
    model_config = ConfigDict(frozen=True)

    ordinary_income: float = 0.0
    long_term_gains: float = 0.0
    dividends: float = 0.0
    charitable_cash_given: float = 0.0
    salt_paid: float = 0.0

    @field_validator(*AMOUNT_FIELDS, mode="before")
    @classmethod
    def clamp_amount(cls, v):
        if v is None:
            return 0.0
        try:
            amount = float(v)
        except (TypeError, ValueError):
            # Not a number at all; let pydantic report it
            return v
        if not math.isfinite(amount) or amount < 0:
            return 0.0
        return min(amount, MAX_AMOUNT)

    @classmethod
    def from_thousands(
        cls,
        ordinary_income: Any,
        long_term_gains: Any,
        dividends: Any = 0,
        charitable_cash_given: Any = 0,
        salt_paid: Any = 0,
    ) -> "EstimateInput":
        """Build an input from amounts expressed in thousands of dollars."""
        return cls(
            ordinary_income=_scale_thousands(ordinary_income),
            long_term_gains=_scale_thousands(long_term_gains),
            dividends=_scale_thousands(dividends),
            charitable_cash_given=_scale_thousands(charitable_cash_given),
            salt_paid=_scale_thousands(salt_paid),
        )

    @property
    def ordinary_part(self) -> float:
        """Income taxed at bracket rates (dividends are never preferential here)."""
        return self.ordinary_income + self.dividends

    @property
    def adjusted_gross_income(self) -> float:
        return self.ordinary_part + self.long_term_gains

    @property
    def modified_agi(self) -> float:
        # No add-backs are modeled
        return self.adjusted_gross_income


# =============================================================================
# ESTIMATE RESULTS
# =============================================================================

class TaxBracketBreakdown(CamelModel):
    """Details of tax calculation per bracket."""
    bracket_start: float
    bracket_end: float
    rate: float
    income_in_bracket: float
    tax_in_bracket: float


class EstimateResult(CamelModel):
    """
    Complete estimate. Currency fields are whole dollars, rounded once
    when the result is built.
    """
    tax_year: int
    profile: EstimateProfile = EstimateProfile.FULL

    adjusted_gross_income: int
    deduction_used: int
    itemized_was_used: bool
    taxable_ordinary: int
    taxable_long_term_gains: int

    ordinary_tax: int
    long_term_gains_tax: int
    net_investment_income_tax: int = 0
    child_credit_used: int = 0
    total_tax: int

    marginal_rate: float = 0.0
    effective_rate: float = Field(default=0.0, description="Total tax as a percent of AGI")
    bracket_breakdown: List[TaxBracketBreakdown] = Field(default_factory=list)

    # Ad hoc 0.95 * total - 5000 correction; only set when explicitly requested
    observed_adjustment_total: Optional[int] = None


# =============================================================================
# SIMULATION MODELS
# =============================================================================

class SimulationResult(CamelModel):
    """Result of a what-if simulation against one policy table."""

    scenario_name: str
    changes: Dict[str, float]
    baseline: EstimateResult
    simulated: EstimateResult

    tax_difference: int = Field(description="Negative = savings")
    is_beneficial: bool
    summary: str


class YearComparison(CamelModel):
    """One tax year's estimate for the same inputs."""

    tax_year: int
    result: EstimateResult
    change_from_previous: Optional[int] = None


# =============================================================================
# API REQUEST MODELS
# =============================================================================

class EstimateRequest(CamelModel):
    """Full-profile request. Amounts are in thousands of dollars."""
    ordinary_income: Optional[float] = 0.0
    long_term_gains: Optional[float] = 0.0
    dividends: Optional[float] = 0.0
    charitable_cash_given: Optional[float] = 0.0
    salt_paid: Optional[float] = 0.0
    tax_year: Optional[int] = None

    def to_input(self) -> EstimateInput:
        return EstimateInput.from_thousands(
            self.ordinary_income,
            self.long_term_gains,
            self.dividends,
            self.charitable_cash_given,
            self.salt_paid,
        )


class ReducedEstimateRequest(CamelModel):
    """Three-argument request. Amounts are in thousands of dollars."""
    ordinary_income: Optional[float] = 0.0
    long_term_gains: Optional[float] = 0.0
    charitable_cash_given: Optional[float] = 0.0
    tax_year: Optional[int] = None
    apply_observed_adjustment: bool = False

    def to_input(self) -> EstimateInput:
        return EstimateInput.from_thousands(
            self.ordinary_income,
            self.long_term_gains,
            charitable_cash_given=self.charitable_cash_given,
        )


class SimulationRequest(CamelModel):
    """Baseline request plus dollar deltas keyed by EstimateInput field name."""
    baseline: EstimateRequest
    changes: Dict[str, float]
    scenario_name: Optional[str] = "Custom Simulation"


class CompareRequest(EstimateRequest):
    """Estimate the same inputs under several tax years (all when omitted)."""
    tax_years: Optional[List[int]] = None
