"""
MFJ Tax Estimator - Tax Constants
=================================
Versioned federal policy tables for Married Filing Jointly.

The yearly numbers live in YAML files under policy_tables/ (one file per
tax year) so they can be updated without code changes. This module loads
and validates them; the engine never reads them on its own.
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import List, Union

import yaml
from pydantic import ValidationError

from models import PolicyTable, PolicyTableError

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

POLICY_DIR = Path(os.getenv("TAX_POLICY_DIR", Path(__file__).parent / "policy_tables"))
POLICY_FILE_PATTERN = "mfj_{year}.yaml"

DEFAULT_TAX_YEAR = int(os.getenv("DEFAULT_TAX_YEAR", "2025"))

# Reduced three-argument profile: SALT is a fixed deduction, not capped
REDUCED_PROFILE_SALT_DEDUCTION = 10000

# Observed personal correction for the reduced profile: 0.95 * total - 5000
OBSERVED_ADJUSTMENT_FACTOR = 0.95
OBSERVED_ADJUSTMENT_OFFSET = 5000

# Long-term gain band rates (0% / 15% / 20%)
CAPITAL_GAINS_RATES = (0.0, 0.15, 0.20)


# =============================================================================
# LOADING
# =============================================================================

def load_policy_table_from_file(path: Union[str, Path]) -> PolicyTable:
    """
    Load and validate a single policy table file.

    Raises:
        PolicyTableError: file missing, unreadable, or any field malformed.
    """
    path = Path(path)
    if not path.exists():
        raise PolicyTableError(f"Policy table file not found: {path}")

    with open(path, "r") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise PolicyTableError(f"Policy table {path} is not valid YAML: {e}") from e

    if not isinstance(data, dict):
        raise PolicyTableError(f"Policy table {path} must be a mapping of fields")

    try:
        table = PolicyTable.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise PolicyTableError(f"Malformed policy table {path}: {problems}") from e

    logger.info(f"Loaded {table.tax_year} policy table from {path}")
    return table


@lru_cache(maxsize=None)
def load_policy_table(tax_year: int = DEFAULT_TAX_YEAR) -> PolicyTable:
    """
    Load the policy table for a tax year. Cached for the process lifetime;
    the returned table is immutable.
    """
    path = POLICY_DIR / POLICY_FILE_PATTERN.format(year=tax_year)
    if not path.exists():
        logger.warning(f"No policy table file for tax year {tax_year} in {POLICY_DIR}")
        raise PolicyTableError(f"No policy table for tax year {tax_year}")

    table = load_policy_table_from_file(path)
    if table.tax_year != tax_year:
        raise PolicyTableError(
            f"Policy table {path} declares tax_year {table.tax_year}, expected {tax_year}"
        )
    return table


def available_tax_years() -> List[int]:
    """Tax years that have a policy table file, ascending."""
    years = []
    for path in POLICY_DIR.glob(POLICY_FILE_PATTERN.format(year="*")):
        suffix = path.stem.split("_")[-1]
        if suffix.isdigit():
            years.append(int(suffix))
    return sorted(years)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_tax_bracket_info(policy: PolicyTable) -> str:
    """Return a formatted string of the ordinary brackets in a policy table."""
    lines = [f"{policy.tax_year} Federal Tax Brackets for Married Filing Jointly:"]
    prev_limit = 0.0

    for bracket in policy.ordinary_brackets:
        if bracket.upper_bound == float('inf'):
            lines.append(f"  Over ${prev_limit:,.0f}: {bracket.rate*100:.0f}%")
        else:
            lines.append(f"  ${prev_limit:,.0f} to ${bracket.upper_bound:,.0f}: {bracket.rate*100:.0f}%")
            prev_limit = bracket.upper_bound

    return "\n".join(lines)


def get_marginal_rate(taxable_income: float, policy: PolicyTable) -> float:
    """Get the marginal ordinary rate for a given taxable income."""
    for bracket in policy.ordinary_brackets:
        if taxable_income <= bracket.upper_bound:
            return bracket.rate

    return policy.ordinary_brackets[-1].rate
