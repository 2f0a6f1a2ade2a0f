"""
Traffic Gate API

FastAPI application exposing:
- GET  /go     → 302 to the redirect target, the JS challenge, or the deny page
- POST /verify → JSON {action: allow|deny, redirect?}
- GET  /health → JSON status

Rules are reloaded from disk on SIGHUP.
"""

from contextlib import asynccontextmanager
import logging
import os
import secrets
import signal
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from redis.exceptions import RedisError

from core.orchestrator import (
    DEFAULT_CHALLENGE_URL,
    DEFAULT_DENY_URL,
    GateOrchestrator,
    campaign_params,
)
from core.processors.context import RequestContextProcessor, resolve_client_ip
from core.rules import ConfigurationError, RuleStore
from core.schemas.inputs import VerifyRequest
from core.schemas.outputs import VerifyResponse
from core.tokens import DEFAULT_TTL_SECONDS, ChallengeTokenCodec
from persistence.audit_logger import AuditLogger
from persistence.connection import get_redis_client
from persistence.geolocation import MaxMindGeoResolver
from persistence.nonce_registry import RedisNonceRegistry
from persistence.rate_counter import FixedWindowRateCounter
from persistence.reputation import IPQSReputationClient


load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"
PROJECT_ROOT = Path(__file__).resolve().parent
DEFAULT_RULES_PATH = PROJECT_ROOT / "config" / "scoring_rules.json"


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# Application State
# =============================================================================

class AppState:
    """Application state container."""
    orchestrator: Optional[GateOrchestrator] = None
    rules: Optional[RuleStore] = None
    geo: Optional[MaxMindGeoResolver] = None


state = AppState()


def _load_secret() -> str:
    secret = os.getenv("GATE_HMAC_SECRET")
    if not secret:
        logger.critical(
            "GATE_HMAC_SECRET is not set; using an ephemeral secret. "
            "Challenge tokens will not survive a restart."
        )
        secret = secrets.token_hex(32)
    return secret


def build_orchestrator(rules: RuleStore) -> GateOrchestrator:
    """Wire collaborators from environment configuration."""
    try:
        redis_client = get_redis_client()
    except (RedisError, ValueError) as e:
        logger.warning(f"Redis unavailable, running without cache/rate counter: {e}")
        redis_client = None

    context = RequestContextProcessor(
        reputation=IPQSReputationClient(os.getenv("IPQS_API_KEY"), cache=redis_client),
        geo=MaxMindGeoResolver(
            city_db_path=os.getenv("GEOIP_CITY_DB", MaxMindGeoResolver.DEFAULT_CITY_DB),
            asn_db_path=os.getenv("GEOIP_ASN_DB", MaxMindGeoResolver.DEFAULT_ASN_DB),
        ),
    )

    nonce_registry = None
    if _env_flag("GATE_SINGLE_USE_TOKENS"):
        nonce_registry = RedisNonceRegistry(redis_client)

    return GateOrchestrator(
        rules=rules,
        codec=ChallengeTokenCodec(_load_secret()),
        context=context,
        rate_counter=FixedWindowRateCounter(
            redis_client,
            limit_per_window=int(os.getenv("RATE_LIMIT_PER_MIN", 60)),
        ),
        audit=AuditLogger(log_path=os.getenv("GATE_DECISION_LOG", "logs/decisions.log")),
        redirect_url=os.getenv("GATE_REDIRECT_URL", "https://example.com/"),
        deny_url=os.getenv("GATE_DENY_URL", DEFAULT_DENY_URL),
        challenge_url=os.getenv("GATE_CHALLENGE_URL", DEFAULT_CHALLENGE_URL),
        token_ttl=int(os.getenv("GATE_TOKEN_TTL", DEFAULT_TTL_SECONDS)),
        nonce_registry=nonce_registry,
    )


def _reload_rules(signum, frame) -> None:
    if state.rules is None:
        return
    try:
        state.rules.reload()
        logger.info("Scoring rules reloaded")
    except ConfigurationError:
        pass  # already logged; previous snapshot stays active


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting Traffic Gate API...")
    state.rules = RuleStore(os.getenv("GATE_RULES_PATH", str(DEFAULT_RULES_PATH)))
    state.orchestrator = build_orchestrator(state.rules)
    if isinstance(state.orchestrator.context.geo, MaxMindGeoResolver):
        state.geo = state.orchestrator.context.geo

    try:
        signal.signal(signal.SIGHUP, _reload_rules)
    except (AttributeError, ValueError):
        logger.info("SIGHUP rule reload unavailable in this process")

    logger.info("Traffic Gate ready")

    yield

    # Shutdown
    logger.info("Shutting down Traffic Gate API...")
    if state.geo is not None:
        state.geo.close()
        state.geo = None


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Traffic Gate",
    description="Risk-scored traffic gate with stateless JS challenge",
    version=VERSION,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# =============================================================================
# Helpers
# =============================================================================

def client_ip(request: Request) -> str:
    peer = request.client.host if request.client else None
    return resolve_client_ip(request.headers, peer)


def referer_matches(referer: Optional[str], expected_host: Optional[str]) -> bool:
    """CSRF guard: the referer host must equal the expected host."""
    if not referer or not expected_host:
        return False
    return urlparse(referer).hostname == expected_host.split(":")[0]


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": VERSION}


# =============================================================================
# Gate Endpoint (HTTP 302)
# =============================================================================

@app.get("/go")
def gate(request: Request):
    """
    Score the visitor and redirect.

    - Campaign params (gclid, clickid, utm_*) are forwarded on ALLOW
    - CHALLENGE carries them inside the signed token
    - Any internal failure lands on the deny page
    """
    params = campaign_params(request.query_params)
    user_agent = request.headers.get("user-agent", "")
    outcome = state.orchestrator.gate(client_ip(request), user_agent, params)
    return RedirectResponse(url=outcome.redirect_url, status_code=status.HTTP_302_FOUND)


# =============================================================================
# Verify Endpoint (JSON Response)
# =============================================================================

@app.post("/verify", response_model=VerifyResponse, response_model_exclude_none=True)
def verify(payload: VerifyRequest, request: Request):
    """
    Verify a challenge token against reported browser signals.

    - Token must be valid, unexpired and bound to the caller IP
    - Returns allow + redirect only when the challenge score ALLOWs
    """
    referer_ok = True
    if _env_flag("GATE_CHECK_REFERER"):
        expected = os.getenv("GATE_DOMAIN") or request.headers.get("host")
        referer_ok = referer_matches(request.headers.get("referer"), expected)

    outcome = state.orchestrator.verify(
        payload.token,
        payload.signals,
        client_ip(request),
        referer_ok=referer_ok,
    )

    if outcome.failure is not None:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=VerifyResponse(action="deny", error="Verification failed").model_dump(exclude_none=True),
        )

    return VerifyResponse(action=outcome.action, redirect=outcome.redirect)


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
