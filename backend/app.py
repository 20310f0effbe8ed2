"""
MFJ Tax Estimator - Streamlit Frontend
======================================
Ballpark federal tax for Married Filing Jointly.

Flow:
1. Pick a tax year and profile (full or reduced)
2. Enter amounts in thousands of dollars
3. Review the estimate and the bracket breakdown

Run with: streamlit run backend/app.py
"""

import sys
import os

# Path setup so `streamlit run backend/app.py` finds the sibling modules
_current_file = os.path.abspath(__file__)
_backend_dir = os.path.dirname(_current_file)
if _backend_dir not in sys.path:
    sys.path.insert(0, _backend_dir)

import streamlit as st
import pandas as pd

from tax_constants import DEFAULT_TAX_YEAR, available_tax_years, load_policy_table, get_tax_bracket_info
from models import EstimateInput, EstimateResult
from tax_simulator import TaxCalculator


# =============================================================================
# PAGE CONFIGURATION
# =============================================================================

st.set_page_config(
    page_title="MFJ Tax Estimator",
    page_icon="🧮",
    layout="wide",
)

st.title("🧮 MFJ Federal Tax Estimator")
st.caption("Dead simple, non-trustworthy ballpark. Ignores AMT, payroll tax, refundable credits and state tax.")


# =============================================================================
# HELPERS
# =============================================================================

def format_currency(amount: float) -> str:
    return f"${amount:,.0f}"


def breakdown_frame(result: EstimateResult) -> pd.DataFrame:
    rows = [
        {
            "Bracket": f"{format_currency(b.bracket_start)} - {format_currency(b.bracket_end)}",
            "Rate": f"{b.rate * 100:.0f}%",
            "Income in bracket": format_currency(b.income_in_bracket),
            "Tax": format_currency(b.tax_in_bracket),
        }
        for b in result.bracket_breakdown
    ]
    return pd.DataFrame(rows)


# =============================================================================
# INPUTS
# =============================================================================

years = available_tax_years()
with st.sidebar:
    st.header("Settings")
    tax_year = st.selectbox(
        "Tax year",
        years,
        index=years.index(DEFAULT_TAX_YEAR) if DEFAULT_TAX_YEAR in years else len(years) - 1,
    )
    profile = st.radio(
        "Profile",
        ["Full", "Reduced (income, gains, charitable)"],
        help="The reduced profile uses a fixed $10,000 SALT deduction and skips NIIT and the child credit.",
    )
    reduced = profile != "Full"
    apply_adjustment = False
    if reduced:
        apply_adjustment = st.checkbox(
            "Show observed adjustment (0.95 × total − 5,000)",
            help="Ad hoc personal correction, not a tax rule.",
        )

policy = load_policy_table(tax_year)

st.subheader("Amounts (in thousands)")
col1, col2, col3 = st.columns(3)
with col1:
    ordinary_k = st.number_input("Ordinary income", min_value=0.0, value=123.0, step=1.0)
    gains_k = st.number_input("Long-term capital gains", min_value=0.0, value=0.0, step=1.0)
with col2:
    charitable_k = st.number_input("Charitable cash given", min_value=0.0, value=0.0, step=1.0)
    dividends_k = st.number_input("Dividends", min_value=0.0, value=0.0, step=1.0, disabled=reduced)
with col3:
    salt_k = st.number_input("State/local tax paid", min_value=0.0, value=0.0, step=1.0, disabled=reduced)


# =============================================================================
# RESULTS
# =============================================================================

calculator = TaxCalculator(policy)
if reduced:
    inputs = EstimateInput.from_thousands(ordinary_k, gains_k, charitable_cash_given=charitable_k)
    result = calculator.estimate_reduced(inputs, apply_observed_adjustment=apply_adjustment)
else:
    inputs = EstimateInput.from_thousands(ordinary_k, gains_k, dividends_k, charitable_k, salt_k)
    result = calculator.estimate(inputs)

st.divider()
m1, m2, m3, m4 = st.columns(4)
m1.metric("Total tax", format_currency(result.total_tax))
m2.metric("AGI", format_currency(result.adjusted_gross_income))
m3.metric(
    "Deduction",
    format_currency(result.deduction_used),
    help="Itemized" if result.itemized_was_used else "Standard",
)
m4.metric("Effective rate", f"{result.effective_rate:.2f}%")

if result.observed_adjustment_total is not None:
    st.info(f"Observed adjustment total: {format_currency(result.observed_adjustment_total)}")

col1, col2 = st.columns(2)
with col1:
    st.markdown("**Tax components**")
    st.table(pd.DataFrame([
        {"Component": "Ordinary tax", "Amount": format_currency(result.ordinary_tax)},
        {"Component": "Long-term gains tax", "Amount": format_currency(result.long_term_gains_tax)},
        {"Component": "Net investment income tax", "Amount": format_currency(result.net_investment_income_tax)},
        {"Component": "Child credit used", "Amount": f"-{format_currency(result.child_credit_used)}"},
        {"Component": "Total", "Amount": format_currency(result.total_tax)},
    ]))
with col2:
    st.markdown(f"**Ordinary brackets** (marginal rate {result.marginal_rate * 100:.0f}%)")
    frame = breakdown_frame(result)
    if frame.empty:
        st.write("No taxable ordinary income.")
    else:
        st.dataframe(frame, hide_index=True, use_container_width=True)

with st.expander("📊 Policy table"):
    st.text(get_tax_bracket_info(policy))
    st.json(result.model_dump(by_alias=True, exclude={"bracket_breakdown"}))
