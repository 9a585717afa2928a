"""
AdPilot API — FastAPI application.
Rule management, automation control, and advisory endpoints over one engine.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .adapters.metrics import http_request_duration, http_requests_total
from .auth.jwt import create_access_token, require_admin
from .config import settings
from .engine.automation import AutomationEngine
from .errors import RuleNotFoundError, RuleValidationError
from .logging import setup_logging
from .models import (
    AIInsight,
    AnomalyDetection,
    AutomationHistoryEntry,
    CampaignSnapshot,
    CampaignsRequest,
    CycleReport,
    EnabledRequest,
    ForecastRequest,
    HealthResponse,
    PerformanceForecast,
    PredictiveBidding,
    Rule,
    SchedulerStatus,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the engine and stop its scheduler on shutdown."""
    setup_logging()
    logger.info("adpilot_starting", version="1.0.0", remote_platform=settings.uses_remote_platform)

    engine = AutomationEngine.from_settings()
    app.state.engine = engine
    if settings.automation_autostart:
        engine.start()

    logger.info("adpilot_ready", rules=len(engine.store))
    yield

    await engine.aclose()
    logger.info("adpilot_shutdown")


app = FastAPI(
    title="AdPilot API",
    version="1.0.0",
    description="Campaign automation rules, anomaly detection and insights",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_engine(request: Request) -> AutomationEngine:
    return request.app.state.engine


# ── Middleware ──


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Track HTTP request metrics."""
    start = time.time()
    response = await call_next(request)
    duration = time.time() - start

    path = request.url.path
    # Normalize paths to avoid cardinality explosion
    if path.startswith("/v1/"):
        path = "/v1/" + path.split("/")[2] if len(path.split("/")) > 2 else path

    http_requests_total.labels(method=request.method, path=path, status=response.status_code).inc()
    http_request_duration.labels(method=request.method, path=path).observe(duration)

    return response


# ── Errors ──


@app.exception_handler(RuleValidationError)
async def rule_validation_handler(request: Request, exc: RuleValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc), "errors": exc.errors})


@app.exception_handler(RuleNotFoundError)
async def rule_not_found_handler(request: Request, exc: RuleNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


# ── Health ──


@app.get("/health", response_model=HealthResponse)
async def health(engine: AutomationEngine = Depends(get_engine)):
    components: dict[str, str] = {"api": "ok", "scheduler": engine.scheduler.state}
    try:
        await engine.snapshot()
        components["ad_platform"] = "ok"
    except Exception:
        components["ad_platform"] = "error"

    overall = "ok" if components["ad_platform"] == "ok" else "degraded"
    return HealthResponse(status=overall, components=components)


# ── Metrics (Prometheus scrape) ──


@app.get("/metrics")
async def metrics():
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# ── Auth ──


@app.post("/token")
async def login(username: str, password: str):
    """Simple admin login. Returns JWT."""
    if username == "admin" and password == settings.admin_password:
        token = create_access_token({"sub": "admin"})
        return {"access_token": token, "token_type": "bearer"}
    raise HTTPException(401, "Invalid credentials")


# ── Rules ──


@app.get("/v1/rules", response_model=list[Rule])
async def list_rules(engine: AutomationEngine = Depends(get_engine)):
    return engine.get_rules()


@app.post("/v1/rules", response_model=Rule, status_code=201)
async def create_rule(
    payload: dict,
    engine: AutomationEngine = Depends(get_engine),
    _: str = Depends(require_admin),
):
    """Validated by the rule store so malformed rules surface as RuleValidationError."""
    return engine.add_rule(payload)


@app.get("/v1/rules/{rule_id}", response_model=Rule)
async def get_rule(rule_id: str, engine: AutomationEngine = Depends(get_engine)):
    return engine.get_rule(rule_id)


@app.patch("/v1/rules/{rule_id}", response_model=Rule)
async def update_rule(
    rule_id: str,
    payload: dict,
    engine: AutomationEngine = Depends(get_engine),
    _: str = Depends(require_admin),
):
    return engine.update_rule(rule_id, payload)


@app.put("/v1/rules/{rule_id}/enabled", response_model=Rule)
async def set_rule_enabled(
    rule_id: str,
    req: EnabledRequest,
    engine: AutomationEngine = Depends(get_engine),
    _: str = Depends(require_admin),
):
    return engine.set_rule_enabled(rule_id, req.enabled)


@app.delete("/v1/rules/{rule_id}", status_code=204)
async def delete_rule(
    rule_id: str,
    engine: AutomationEngine = Depends(get_engine),
    _: str = Depends(require_admin),
):
    engine.delete_rule(rule_id)
    return Response(status_code=204)


@app.get("/v1/history", response_model=list[AutomationHistoryEntry])
async def history(
    limit: int | None = None,
    rule_id: str | None = None,
    campaign_id: str | None = None,
    engine: AutomationEngine = Depends(get_engine),
):
    """Most recent action attempts, newest first (at most 50)."""
    return engine.get_history(limit=limit, rule_id=rule_id, campaign_id=campaign_id)


# ── Campaigns ──


@app.get("/v1/campaigns", response_model=list[CampaignSnapshot])
async def list_campaigns(engine: AutomationEngine = Depends(get_engine)):
    return await engine.snapshot()


@app.post("/v1/campaigns/{campaign_id}/resume")
async def resume_campaign(
    campaign_id: str,
    engine: AutomationEngine = Depends(get_engine),
    _: str = Depends(require_admin),
):
    try:
        await engine.resume_campaign(campaign_id)
    except LookupError:
        raise HTTPException(404, f"Campaign {campaign_id} not found") from None
    return {"status": "resumed", "campaign_id": campaign_id}


# ── Advisory ──


async def _campaigns(req: CampaignsRequest, engine: AutomationEngine) -> list[CampaignSnapshot]:
    if req.campaigns is not None:
        return req.campaigns
    return await engine.snapshot()


@app.post("/v1/insights", response_model=list[AIInsight])
async def insights(req: CampaignsRequest, engine: AutomationEngine = Depends(get_engine)):
    return engine.generate_insights(await _campaigns(req, engine))


@app.post("/v1/anomalies", response_model=list[AnomalyDetection])
async def anomalies(req: CampaignsRequest, engine: AutomationEngine = Depends(get_engine)):
    return engine.detect_anomalies(await _campaigns(req, engine))


@app.get("/v1/anomalies/history", response_model=list[AnomalyDetection])
async def anomaly_history(
    campaign_id: str | None = None,
    anomaly_type: str | None = Query(default=None, alias="type"),
    engine: AutomationEngine = Depends(get_engine),
):
    return engine.anomaly_history(campaign_id=campaign_id, anomaly_type=anomaly_type)


@app.post("/v1/predictions/bid", response_model=list[PredictiveBidding])
async def predict_bids(req: CampaignsRequest, engine: AutomationEngine = Depends(get_engine)):
    return engine.predict_bids(await _campaigns(req, engine))


@app.post("/v1/predictions/performance", response_model=PerformanceForecast)
async def predict_performance(req: ForecastRequest, engine: AutomationEngine = Depends(get_engine)):
    return engine.predict_performance(req.campaign, req.days)


# ── Automation control ──


@app.get("/v1/automation/status", response_model=SchedulerStatus)
async def automation_status(engine: AutomationEngine = Depends(get_engine)):
    return engine.status()


@app.post("/v1/automation/start", response_model=SchedulerStatus)
async def automation_start(
    engine: AutomationEngine = Depends(get_engine),
    _: str = Depends(require_admin),
):
    engine.start()
    return engine.status()


@app.post("/v1/automation/stop", response_model=SchedulerStatus)
async def automation_stop(
    engine: AutomationEngine = Depends(get_engine),
    _: str = Depends(require_admin),
):
    engine.stop()
    return engine.status()


@app.post("/v1/automation/run", response_model=CycleReport)
async def automation_run(
    engine: AutomationEngine = Depends(get_engine),
    _: str = Depends(require_admin),
):
    """Run one cycle now. 409 when a cycle is already in progress."""
    report = await engine.run_cycle()
    if report is None:
        raise HTTPException(409, "A cycle is already in progress")
    return report


@app.post("/v1/automation/reallocate", response_model=list[AutomationHistoryEntry])
async def automation_reallocate(
    req: CampaignsRequest,
    engine: AutomationEngine = Depends(get_engine),
    _: str = Depends(require_admin),
):
    return await engine.reallocate_budget(req.campaigns)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("adpilot.main:app", host=settings.host, port=settings.port)
