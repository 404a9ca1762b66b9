"""
service/api.py
==============
Optional FastAPI server that runs simulations on request.

Start the server::

    python -m service.api          # → http://localhost:8000/docs

``GET /policy`` returns the default :class:`~sim.policy.ProtocolPolicy`.
``POST /simulate`` accepts a seed, a horizon and optional policy overrides
and returns the run's metrics.

.. note::

   This server is **not** required to run the simulation.
   It exists for external integrations and batch experiments.
"""

import dataclasses
import logging
from typing import Dict, Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from config import API_HOST, API_MAX_HORIZON_S, API_PORT, DEFAULT_SEED
from sim.policy import ProtocolPolicy
from sim.simulation import Simulation

log = logging.getLogger("service")

_POLICY_FIELDS = {f.name for f in dataclasses.fields(ProtocolPolicy)}

# ── Pydantic request / response schemas ──────────────────────────────────────


class SimulateRequest(BaseModel):
    """Run parameters submitted to ``/simulate``."""
    seed: int = DEFAULT_SEED
    horizon: Optional[float] = None
    overrides: Dict[str, float] = {}


class SimulateResponse(BaseModel):
    """Outcome of one run."""
    seed: int
    horizon: float
    end_time: float
    live_cars: int
    logged_alerts: int
    metrics: Dict[str, int]


def build_policy(overrides: Dict[str, float]) -> ProtocolPolicy:
    """Default policy with *overrides* applied and validated.

    Raises
    ------
    ValueError
        For unknown parameter names or values the engine cannot run with.
    """
    unknown = sorted(set(overrides) - _POLICY_FIELDS)
    if unknown:
        raise ValueError(f"unknown policy parameters: {', '.join(unknown)}")
    values = {}
    defaults = ProtocolPolicy()
    for name, value in overrides.items():
        # keep integer parameters integral
        if isinstance(getattr(defaults, name), int):
            if value != int(value):
                raise ValueError(f"{name} must be an integer, got {value!r}")
            value = int(value)
        values[name] = value
    return dataclasses.replace(defaults, **values).validate()


# ── FastAPI application ──────────────────────────────────────────────────────

app = FastAPI(
    title="Road Report Simulation API",
    description="Runs seeded VANET road report simulations.",
    version="1.0",
)


@app.get("/policy")
def get_policy():
    """Default protocol parameters."""
    return dataclasses.asdict(ProtocolPolicy())


@app.post("/simulate", response_model=SimulateResponse)
def simulate(request: SimulateRequest):
    """Run one simulation to its horizon and report the metrics."""
    try:
        policy = build_policy(request.overrides)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    horizon = policy.simulation_interval if request.horizon is None else request.horizon
    if horizon <= 0 or horizon > API_MAX_HORIZON_S:
        raise HTTPException(
            status_code=400,
            detail=f"horizon must be in (0, {API_MAX_HORIZON_S:g}] seconds",
        )

    sim = Simulation(seed=request.seed, horizon=horizon, policy=policy)
    metrics = sim.run()
    log.info("simulate seed=%s horizon=%.1f broadcasts=%d",
             request.seed, horizon, metrics["broadcasts"])
    return SimulateResponse(
        seed=request.seed,
        horizon=horizon,
        end_time=sim.now,
        live_cars=len(sim.cars),
        logged_alerts=len(sim.directory.alerts),
        metrics=metrics,
    )


# ── Standalone entry point ───────────────────────────────────────────────────

if __name__ == "__main__":
    print(f"Starting road report server on http://{API_HOST}:{API_PORT} …")
    uvicorn.run(app, host=API_HOST, port=API_PORT)
