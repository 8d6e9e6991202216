"""Reward engine FastAPI application."""
import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Header, Request

from reward_engine.config import settings
from reward_engine.logic.models import GameMode, ReportMethod
from reward_engine.middleware import ErrorHandlerMiddleware, PlayerIdMiddleware
from reward_engine.protocol import (
    ProbabilityRequest,
    PunishmentInfo,
    RecalculateResponse,
    ReportResponse,
    RuleInfo,
    RulesResponse,
    SpinRequest,
    SpinResponse,
)
from reward_engine.redis_service import redis_service
from reward_engine.repository import ConfigRepository
from reward_engine.service import RewardEngineService
from reward_engine.validators import validate_admin_token, validate_probability_request


logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Engine instance, seeded with the default configuration
service = RewardEngineService(ConfigRepository.with_defaults(), redis=redis_service)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage Redis connection and cache warm-up lifecycle."""
    if settings.report_store_enabled:
        await redis_service.connect()
    if settings.warm_up_on_startup:
        service.start_warm_up()
    yield
    await service.stop_warm_up()
    if settings.report_store_enabled:
        await redis_service.close()


app = FastAPI(
    title="Slot Reward Engine",
    version="0.1.0",
    description="Reward-rule evaluation and probability/RTP reports for slot halls",
    lifespan=lifespan,
)

app.add_middleware(ErrorHandlerMiddleware)
app.add_middleware(PlayerIdMiddleware)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


@app.post("/spin")
async def spin(request: Request, body: SpinRequest) -> dict:
    """
    POST /spin.

    Draws and classifies one outcome for the hall's current assignment.
    Balances, bans and sessions are applied by the caller.
    """
    player_id = request.state.player_id
    result = service.evaluate_mode_spin(body.mode, player_id=player_id)
    response = SpinResponse.from_result(str(uuid.uuid4()), body.mode, result)
    return response.model_dump()


@app.get("/rules/{mode}")
async def rules(mode: GameMode) -> dict:
    """
    GET /rules/{mode}.

    Active rules and punishments of the hall plus its cached Monte Carlo
    report. Returns reportStatus "not_ready" rather than computing.
    """
    assignment = service.repository.assignment(mode)
    rule_set = service.repository.rule_set(assignment.scheme_id)
    report = service.get_probability_report(
        assignment.weight_config_id, assignment.scheme_id, ReportMethod.MONTE_CARLO
    )
    response = RulesResponse(
        gameMode=mode,
        weightConfigId=assignment.weight_config_id,
        schemeId=assignment.scheme_id,
        citationSymbol=rule_set.citation_symbol,
        rules=[RuleInfo.from_rule(rule) for rule in rule_set.active_rules],
        punishments=[
            PunishmentInfo.from_punishment(p) for p in rule_set.active_punishments
        ],
        report=report.model_dump(mode="json") if report is not None else None,
        reportStatus="ready" if report is not None else "not_ready",
    )
    return response.model_dump()


@app.post("/admin/probability")
async def admin_probability(
    body: ProbabilityRequest,
    x_admin_token: str | None = Header(default=None),
) -> dict:
    """POST /admin/probability: compute (single-flight), cache and return a report."""
    validate_admin_token(x_admin_token)
    validate_probability_request(body)
    report = await service.compute_report(
        body.weightConfigId,
        body.schemeId,
        body.method,
        sample_count=body.sampleCount,
        trigger="admin",
    )
    return ReportResponse.from_report(report).model_dump()


@app.post("/admin/schemes/{scheme_id}/recalculate")
async def recalculate_scheme(
    scheme_id: int,
    x_admin_token: str | None = Header(default=None),
) -> dict:
    """Invalidate and recompute every report of a reward scheme."""
    validate_admin_token(x_admin_token)
    service.repository.rule_set(scheme_id)
    reports = await service.recalculate_for_scheme(scheme_id)
    return RecalculateResponse.from_reports(reports).model_dump()


@app.post("/admin/weights/{weight_config_id}/recalculate")
async def recalculate_weights(
    weight_config_id: int,
    x_admin_token: str | None = Header(default=None),
) -> dict:
    """Invalidate and recompute every report of a weight configuration."""
    validate_admin_token(x_admin_token)
    service.repository.weight_table(weight_config_id)
    reports = await service.recalculate_for_weight_config(weight_config_id)
    return RecalculateResponse.from_reports(reports).model_dump()
