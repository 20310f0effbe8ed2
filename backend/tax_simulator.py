"""
MFJ Tax Estimator - Tax Simulator
=================================
Core tax estimation and simulation engine.

Pipeline (strictly left to right, no feedback):
1. Input normalization (models.EstimateInput)
2. Deduction selection (standard vs capped itemized)
3. Ordinary bracket tax
4. Long-term gains stacked on top of ordinary income
5. Net investment income surtax and nonrefundable child credit

Every stage is a pure function of its arguments and an explicit PolicyTable.
Intermediate values stay unrounded; rounding happens once, when the
EstimateResult is built.
"""

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from tax_constants import (
    CAPITAL_GAINS_RATES,
    OBSERVED_ADJUSTMENT_FACTOR,
    OBSERVED_ADJUSTMENT_OFFSET,
    REDUCED_PROFILE_SALT_DEDUCTION,
    get_marginal_rate,
)
from models import (
    AMOUNT_FIELDS,
    EstimateInput,
    EstimateProfile,
    EstimateResult,
    PolicyTable,
    SimulationResult,
    TaxBracket,
    TaxBracketBreakdown,
    YearComparison,
)


def clamp0(value: float) -> float:
    """max(0, value), with NaN and infinities treated as 0."""
    if not math.isfinite(value) or value < 0:
        return 0.0
    return value


def round_currency(amount: float) -> int:
    """Round to whole dollars, half up."""
    return int(Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# =============================================================================
# DEDUCTION SELECTOR
# =============================================================================

def salt_cap(modified_agi: float, policy: PolicyTable) -> float:
    """SALT cap after the linear phase-down, never below the floor cap."""
    excess = max(0.0, modified_agi - policy.salt_phaseout_start_magi)
    return max(policy.salt_floor_cap, policy.salt_base_cap - policy.salt_phaseout_rate * excess)


def select_deduction(
    adjusted_gross_income: float,
    modified_agi: float,
    charitable_cash_given: float,
    salt_paid: float,
    policy: PolicyTable,
) -> Tuple[float, bool]:
    """
    Pick the greater of the standard and itemized deductions.

    Returns:
        (deduction_used, itemized_was_used). Ties go to the standard deduction.
    """
    charitable_allowed = min(
        charitable_cash_given,
        policy.charitable_cash_agi_cap_fraction * adjusted_gross_income,
    )
    salt_allowed = min(salt_paid, salt_cap(modified_agi, policy))
    itemized = charitable_allowed + salt_allowed

    if itemized > policy.standard_deduction:
        return itemized, True
    return policy.standard_deduction, False


# =============================================================================
# BRACKET TAX CALCULATOR
# =============================================================================

def calculate_bracket_tax(taxable_income: float, brackets: Sequence[TaxBracket]) -> float:
    """Progressive marginal-rate tax on taxable ordinary income."""
    if not math.isfinite(taxable_income) or taxable_income <= 0:
        return 0.0

    tax = 0.0
    base = 0.0
    for bracket in brackets:
        slice_ = max(0.0, min(taxable_income, bracket.upper_bound) - base)
        tax += slice_ * bracket.rate
        if taxable_income <= bracket.upper_bound:
            break
        base = bracket.upper_bound

    return tax


def calculate_tax_with_breakdown(
    taxable_income: float,
    brackets: Sequence[TaxBracket],
) -> Tuple[float, List[TaxBracketBreakdown]]:
    """Calculate tax with detailed bracket breakdown (for display)."""
    if not math.isfinite(taxable_income) or taxable_income <= 0:
        return 0.0, []

    total_tax = 0.0
    breakdown = []
    prev_limit = 0.0

    for bracket in brackets:
        taxable_in_bracket = max(0.0, min(taxable_income, bracket.upper_bound) - prev_limit)
        tax_in_bracket = taxable_in_bracket * bracket.rate
        total_tax += tax_in_bracket

        breakdown.append(TaxBracketBreakdown(
            bracket_start=prev_limit,
            bracket_end=min(bracket.upper_bound, taxable_income),
            rate=bracket.rate,
            income_in_bracket=round(taxable_in_bracket, 2),
            tax_in_bracket=round(tax_in_bracket, 2),
        ))

        if taxable_income <= bracket.upper_bound:
            break
        prev_limit = bracket.upper_bound

    return total_tax, breakdown


# =============================================================================
# CAPITAL-GAINS STACKER
# =============================================================================

@dataclass(frozen=True)
class CapitalGainsBands:
    zero_band: float
    fifteen_band: float
    twenty_band: float

    @property
    def tax(self) -> float:
        zero_rate, fifteen_rate, twenty_rate = CAPITAL_GAINS_RATES
        return (
            zero_rate * self.zero_band
            + fifteen_rate * self.fifteen_band
            + twenty_rate * self.twenty_band
        )


def split_capital_gains(
    taxable_ordinary: float,
    taxable_gains: float,
    zero_top: float,
    fifteen_top: float,
) -> CapitalGainsBands:
    """
    Split long-term gains into the 0/15/20% bands. Gains sit on top of
    ordinary taxable income, so ordinary income fills the low bands first.
    """
    zero_band = clamp0(min(taxable_gains, zero_top - taxable_ordinary))
    fifteen_band = clamp0(min(
        taxable_gains - zero_band,
        fifteen_top - (taxable_ordinary + zero_band),
    ))
    twenty_band = clamp0(taxable_gains - zero_band - fifteen_band)
    return CapitalGainsBands(zero_band, fifteen_band, twenty_band)


# =============================================================================
# SURTAX & CREDIT LAYER
# =============================================================================

def calculate_net_investment_income_tax(
    dividends: float,
    long_term_gains: float,
    modified_agi: float,
    policy: PolicyTable,
) -> float:
    """
    Simplified NIIT: rate times the lesser of investment income and MAGI
    over the threshold.
    """
    net_investment_income = clamp0(dividends + long_term_gains)
    base = min(net_investment_income, clamp0(modified_agi - policy.niit_threshold_magi))
    return base * policy.niit_rate


def calculate_child_tax_credit(modified_agi: float, policy: PolicyTable) -> float:
    """
    Child credit before the nonrefundable limit. Any excess over the
    phase-out start, however small, costs a full step.
    """
    base_credit = policy.qualifying_children_under_17 * policy.ctc_per_child
    # Snap to cents so float noise in MAGI cannot cost a step
    excess = clamp0(round(modified_agi - policy.ctc_phaseout_start_magi, 2))
    steps = math.ceil(excess / policy.ctc_phaseout_step_size)
    reduction = steps * policy.ctc_phaseout_amount_per_step
    return clamp0(base_credit - reduction)


def apply_nonrefundable_credit(tax_before_credits: float, credit: float) -> Tuple[float, float]:
    """Returns (credit_used, total_tax). Credit never pushes tax below 0."""
    credit_used = min(tax_before_credits, credit)
    return credit_used, max(0.0, tax_before_credits - credit_used)


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class TaxCalculator:
    """
    Runs the estimation pipeline against one policy table.

    The table is passed in explicitly; a calculator holds no other state,
    so one instance can be shared freely.
    """

    def __init__(self, policy: PolicyTable):
        self.policy = policy

    def estimate(self, inputs: EstimateInput) -> EstimateResult:
        """Full profile: all five inputs, NIIT and child credit."""
        policy = self.policy
        agi = inputs.adjusted_gross_income
        magi = inputs.modified_agi

        deduction, itemized_used = select_deduction(
            agi, magi, inputs.charitable_cash_given, inputs.salt_paid, policy
        )
        taxable_ordinary, taxable_gains = self._taxable_amounts(inputs, deduction)

        ordinary_tax, breakdown = calculate_tax_with_breakdown(
            taxable_ordinary, policy.ordinary_brackets
        )
        bands = split_capital_gains(
            taxable_ordinary,
            taxable_gains,
            policy.capital_gains_zero_top,
            policy.capital_gains_fifteen_top,
        )
        niit = calculate_net_investment_income_tax(
            inputs.dividends, inputs.long_term_gains, magi, policy
        )

        tax_before_credits = ordinary_tax + bands.tax + niit
        credit_used, total_tax = apply_nonrefundable_credit(
            tax_before_credits, calculate_child_tax_credit(magi, policy)
        )

        return self._build_result(
            profile=EstimateProfile.FULL,
            agi=agi,
            deduction=deduction,
            itemized_used=itemized_used,
            taxable_ordinary=taxable_ordinary,
            taxable_gains=taxable_gains,
            ordinary_tax=ordinary_tax,
            gains_tax=bands.tax,
            niit=niit,
            credit_used=credit_used,
            total_tax=total_tax,
            breakdown=breakdown,
        )

    def estimate_reduced(
        self,
        inputs: EstimateInput,
        apply_observed_adjustment: bool = False,
    ) -> EstimateResult:
        """
        Reduced profile: ordinary income, gains and charitable cash only.

        SALT is a fixed deduction amount instead of the capped SALT paid;
        dividends, NIIT and the child credit are not modeled. The observed
        adjustment (0.95 * total - 5000, floored, unbounded below) is
        reported separately and only when asked for.
        """
        policy = self.policy
        inputs = EstimateInput(
            ordinary_income=inputs.ordinary_income,
            long_term_gains=inputs.long_term_gains,
            charitable_cash_given=inputs.charitable_cash_given,
        )
        agi = inputs.adjusted_gross_income

        charitable_allowed = min(
            inputs.charitable_cash_given,
            policy.charitable_cash_agi_cap_fraction * agi,
        )
        itemized = charitable_allowed + REDUCED_PROFILE_SALT_DEDUCTION
        itemized_used = itemized > policy.standard_deduction
        deduction = itemized if itemized_used else policy.standard_deduction

        taxable_ordinary, taxable_gains = self._taxable_amounts(inputs, deduction)
        ordinary_tax, breakdown = calculate_tax_with_breakdown(
            taxable_ordinary, policy.ordinary_brackets
        )
        bands = split_capital_gains(
            taxable_ordinary,
            taxable_gains,
            policy.capital_gains_zero_top,
            policy.capital_gains_fifteen_top,
        )
        total_tax = ordinary_tax + bands.tax

        observed = None
        if apply_observed_adjustment:
            observed = math.floor(
                OBSERVED_ADJUSTMENT_FACTOR * total_tax - OBSERVED_ADJUSTMENT_OFFSET
            )

        return self._build_result(
            profile=EstimateProfile.REDUCED,
            agi=agi,
            deduction=deduction,
            itemized_used=itemized_used,
            taxable_ordinary=taxable_ordinary,
            taxable_gains=taxable_gains,
            ordinary_tax=ordinary_tax,
            gains_tax=bands.tax,
            niit=0.0,
            credit_used=0.0,
            total_tax=total_tax,
            breakdown=breakdown,
            observed_adjustment_total=observed,
        )

    @staticmethod
    def _taxable_amounts(inputs: EstimateInput, deduction: float) -> Tuple[float, float]:
        """Deduction comes off ordinary income only; gains stack in full."""
        taxable_ordinary = clamp0(inputs.ordinary_part - deduction)
        taxable_gains = inputs.long_term_gains
        return taxable_ordinary, taxable_gains

    def _build_result(
        self,
        profile: EstimateProfile,
        agi: float,
        deduction: float,
        itemized_used: bool,
        taxable_ordinary: float,
        taxable_gains: float,
        ordinary_tax: float,
        gains_tax: float,
        niit: float,
        credit_used: float,
        total_tax: float,
        breakdown: List[TaxBracketBreakdown],
        observed_adjustment_total: Optional[int] = None,
    ) -> EstimateResult:
        effective_rate = round(total_tax / agi * 100, 2) if agi > 0 else 0.0

        return EstimateResult(
            tax_year=self.policy.tax_year,
            profile=profile,
            adjusted_gross_income=round_currency(agi),
            deduction_used=round_currency(deduction),
            itemized_was_used=itemized_used,
            taxable_ordinary=round_currency(taxable_ordinary),
            taxable_long_term_gains=round_currency(taxable_gains),
            ordinary_tax=round_currency(ordinary_tax),
            long_term_gains_tax=round_currency(gains_tax),
            net_investment_income_tax=round_currency(niit),
            child_credit_used=round_currency(credit_used),
            total_tax=round_currency(total_tax),
            marginal_rate=get_marginal_rate(taxable_ordinary, self.policy),
            effective_rate=effective_rate,
            bracket_breakdown=breakdown,
            observed_adjustment_total=observed_adjustment_total,
        )


# =============================================================================
# ENTRY POINTS
# =============================================================================

def estimate_tax_mfj(
    ordinary_income_k: float,
    long_term_gains_k: float,
    dividends_k: float,
    charitable_k: float,
    salt_paid_k: float,
    policy: PolicyTable,
) -> EstimateResult:
    """Full MFJ estimate from five amounts in thousands of dollars."""
    inputs = EstimateInput.from_thousands(
        ordinary_income_k, long_term_gains_k, dividends_k, charitable_k, salt_paid_k
    )
    return TaxCalculator(policy).estimate(inputs)


def estimate_tax_mfj_reduced(
    ordinary_income_k: float,
    long_term_gains_k: float,
    charitable_k: float,
    policy: PolicyTable,
    apply_observed_adjustment: bool = False,
) -> EstimateResult:
    """Reduced MFJ estimate from three amounts in thousands of dollars."""
    inputs = EstimateInput.from_thousands(
        ordinary_income_k, long_term_gains_k, charitable_cash_given=charitable_k
    )
    return TaxCalculator(policy).estimate_reduced(inputs, apply_observed_adjustment)


# =============================================================================
# TAX SIMULATOR (What-If Scenarios)
# =============================================================================

class TaxSimulator:
    """
    Run what-if estimates against a baseline.

    Example:
        simulator = TaxSimulator(policy, baseline)
        result = simulator.run_simulation({'charitable_cash_given': 5000})
    """

    def __init__(
        self,
        policy: PolicyTable,
        baseline: EstimateInput,
        profile: EstimateProfile = EstimateProfile.FULL,
    ):
        self.calculator = TaxCalculator(policy)
        self.baseline = baseline
        self.profile = profile

    def _estimate(self, inputs: EstimateInput) -> EstimateResult:
        if self.profile == EstimateProfile.REDUCED:
            return self.calculator.estimate_reduced(inputs)
        return self.calculator.estimate(inputs)

    def run_simulation(
        self,
        changes: Dict[str, float],
        scenario_name: str = "Custom Simulation",
    ) -> SimulationResult:
        """
        Args:
            changes: Dollar amounts added to EstimateInput fields, e.g.
                     {'long_term_gains': 10000}. Results are re-clamped at 0.
        """
        baseline_result = self._estimate(self.baseline)
        simulated_result = self._estimate(self._apply_changes(self.baseline, changes))

        tax_diff = simulated_result.total_tax - baseline_result.total_tax
        is_beneficial = tax_diff < 0

        if tax_diff < 0:
            summary = f"This change would save you ${abs(tax_diff):,} in taxes."
        elif tax_diff > 0:
            summary = f"This change would increase your taxes by ${tax_diff:,}."
        else:
            summary = "This change would not affect your taxes."

        return SimulationResult(
            scenario_name=scenario_name,
            changes=dict(changes),
            baseline=baseline_result,
            simulated=simulated_result,
            tax_difference=tax_diff,
            is_beneficial=is_beneficial,
            summary=summary,
        )

    @staticmethod
    def _apply_changes(inputs: EstimateInput, changes: Dict[str, float]) -> EstimateInput:
        unknown = sorted(set(changes) - set(AMOUNT_FIELDS))
        if unknown:
            raise ValueError(f"Unknown input fields: {', '.join(unknown)}")

        data = inputs.model_dump()
        for field, delta in changes.items():
            data[field] = data[field] + delta
        return EstimateInput(**data)


def compare_tax_years(
    inputs: EstimateInput,
    policies: Iterable[PolicyTable],
) -> List[YearComparison]:
    """Estimate the same inputs under each policy table, ordered by year."""
    rows = []
    previous_total = None
    for policy in sorted(policies, key=lambda p: p.tax_year):
        result = TaxCalculator(policy).estimate(inputs)
        change = None if previous_total is None else result.total_tax - previous_total
        rows.append(YearComparison(tax_year=policy.tax_year, result=result, change_from_previous=change))
        previous_total = result.total_tax
    return rows


def demo():
    """Print scenario estimates for the default tax year."""
    from tax_constants import load_policy_table

    policy = load_policy_table()
    full = estimate_tax_mfj(123, 123, 12, 12, 12, policy)
    print(full.model_dump_json(by_alias=True, exclude={"bracket_breakdown"}, indent=2))

    reduced = estimate_tax_mfj_reduced(123, 4, 56, load_policy_table(2024), apply_observed_adjustment=True)
    print(reduced.model_dump_json(by_alias=True, exclude={"bracket_breakdown"}, indent=2))


if __name__ == "__main__":
    demo()
