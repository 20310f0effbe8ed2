"""
MFJ Tax Estimator - FastAPI Backend
===================================
HTTP surface over the estimation engine.

All amounts in requests are in thousands of dollars; results are whole
dollars. Policy tables are loaded once per process and passed explicitly
into every calculation.
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tax_constants import DEFAULT_TAX_YEAR, available_tax_years, load_policy_table
from models import (
    CompareRequest,
    EstimateProfile,
    EstimateRequest,
    EstimateResult,
    PolicyTable,
    PolicyTableError,
    ReducedEstimateRequest,
    SimulationRequest,
    SimulationResult,
    YearComparison,
)
from tax_simulator import TaxCalculator, TaxSimulator, compare_tax_years

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION SETUP
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler. Loads every policy table up front."""
    logger.info("MFJ Tax Estimator starting up...")
    for year in available_tax_years():
        load_policy_table(year)
    yield
    logger.info("MFJ Tax Estimator shutting down...")


app = FastAPI(
    title="MFJ Tax Estimator",
    description="Ballpark federal tax estimates for Married Filing Jointly",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:8501"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_policy(tax_year: Optional[int]) -> PolicyTable:
    """Get a policy table or raise 404."""
    year = tax_year or DEFAULT_TAX_YEAR
    if year not in available_tax_years():
        raise HTTPException(status_code=404, detail=f"No policy table for tax year {year}")
    return load_policy_table(year)


# =============================================================================
# API ENDPOINTS
# =============================================================================

@app.get("/")
async def root():
    return {
        "name": "MFJ Tax Estimator",
        "version": "1.0.0",
        "default_tax_year": DEFAULT_TAX_YEAR,
    }


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "tax_years": available_tax_years()}


# --- REFERENCE DATA ---

@app.get("/api/reference/tax-years")
async def get_tax_years():
    return {"tax_years": available_tax_years(), "default": DEFAULT_TAX_YEAR}


@app.get("/api/reference/policy/{tax_year}")
async def get_policy_table(tax_year: int):
    """Full policy table for a tax year. The open top bracket bound is null."""
    data = get_policy(tax_year).model_dump()
    data["ordinary_brackets"] = [
        {
            "upper_bound": b["upper_bound"] if b["upper_bound"] != float('inf') else None,
            "rate": b["rate"],
        }
        for b in data["ordinary_brackets"]
    ]
    return data


@app.get("/api/reference/brackets/{tax_year}")
async def get_tax_brackets(tax_year: int):
    policy = get_policy(tax_year)
    return {
        "tax_year": policy.tax_year,
        "brackets": [
            {
                "limit": b.upper_bound if b.upper_bound != float('inf') else "unlimited",
                "rate": b.rate,
            }
            for b in policy.ordinary_brackets
        ],
        "standard_deduction": policy.standard_deduction,
    }


# --- ESTIMATES ---

@app.post("/api/estimate", response_model=EstimateResult)
async def estimate(request: EstimateRequest):
    """Full-profile estimate from five amounts in thousands."""
    policy = get_policy(request.tax_year)
    return TaxCalculator(policy).estimate(request.to_input())


@app.post("/api/estimate/reduced", response_model=EstimateResult)
async def estimate_reduced(request: ReducedEstimateRequest):
    """Reduced three-argument estimate (fixed SALT, no NIIT or credit)."""
    policy = get_policy(request.tax_year)
    return TaxCalculator(policy).estimate_reduced(
        request.to_input(),
        apply_observed_adjustment=request.apply_observed_adjustment,
    )


@app.post("/api/estimate/simulate", response_model=SimulationResult)
async def simulate(request: SimulationRequest):
    """What-if estimate. Changes are dollar deltas on the baseline inputs."""
    policy = get_policy(request.baseline.tax_year)
    simulator = TaxSimulator(policy, request.baseline.to_input(), EstimateProfile.FULL)
    try:
        return simulator.run_simulation(request.changes, request.scenario_name or "Custom Simulation")
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@app.post("/api/estimate/compare", response_model=List[YearComparison])
async def compare(request: CompareRequest):
    """Same inputs under several tax years (every available year by default)."""
    years = request.tax_years or available_tax_years()
    policies = [get_policy(year) for year in years]
    return compare_tax_years(request.to_input(), policies)


# --- ERROR HANDLERS ---

@app.exception_handler(PolicyTableError)
async def policy_table_exception_handler(request, exc):
    logger.error(f"Policy table error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Policy table configuration error",
            "detail": str(exc) if os.getenv("DEBUG") else "An error occurred"
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if os.getenv("DEBUG") else "An error occurred"
        }
    )


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
