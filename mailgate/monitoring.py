# mailgate/monitoring.py
"""
Centralized monitoring: Prometheus metrics, structured JSON logging, optional Sentry.

Env vars:
- PROMETHEUS_ENABLED (default: true)
- SENTRY_DSN (optional)
- LOG_AS_JSON (default: true)
- LOG_LEVEL (default: INFO)
- ENVIRONMENT (default: development)
"""

import os
import logging
import time
from typing import Tuple

import sentry_sdk
from prometheus_client import (
    Counter, Histogram,
    generate_latest, CONTENT_TYPE_LATEST, REGISTRY,
)
from pythonjsonlogger import jsonlogger

# --- ENV flags
PROMETHEUS_ENABLED = os.getenv("PROMETHEUS_ENABLED", "true").lower() in ("1", "true", "yes")
SENTRY_DSN = os.getenv("SENTRY_DSN", None)
LOG_AS_JSON = os.getenv("LOG_AS_JSON", "true").lower() in ("1", "true", "yes")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")


# --- Logger setup
def setup_logger(name: str = "mailgate", level: int = None) -> logging.Logger:
    level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO")) if level is None else level
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        if LOG_AS_JSON:
            fmt = jsonlogger.JsonFormatter(
                "%(asctime)s %(levelname)s %(name)s %(message)s"
            )
            handler.setFormatter(fmt)
        logger.addHandler(handler)
    return logger


logger = setup_logger()

# --- Sentry (optional)
if SENTRY_DSN:
    sentry_sdk.init(dsn=SENTRY_DSN, environment=ENVIRONMENT)
    logger.info("Sentry initialized")


# --- Prometheus metrics
REQUEST_COUNT = Counter(
    "mailgate_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

REQUEST_LATENCY = Histogram(
    "mailgate_request_latency_seconds",
    "Request latency in seconds",
    ["endpoint"],
)

AUTH_DECISIONS = Counter(
    "mailgate_auth_decisions_total",
    "Auth gate classifications",
    ["outcome"],
)

TOKENS_ISSUED = Counter(
    "mailgate_tokens_issued_total",
    "Bearer tokens issued",
)

PROMPT_FALLBACKS = Counter(
    "mailgate_prompt_fallbacks_total",
    "Prompt resolutions that fell back to the built-in template",
    ["name"],
)

LLM_CALLS = Counter(
    "mailgate_llm_calls_total",
    "LLM calls",
    ["provider", "outcome"],
)

LLM_LATENCY = Histogram(
    "mailgate_llm_latency_seconds",
    "LLM call latency",
    ["provider"],
)


# --- Helper wrappers (never crash the app)
def observe_request(start_ts: float, endpoint: str, method: str, status: str):
    try:
        REQUEST_LATENCY.labels(endpoint=endpoint).observe(time.time() - start_ts)
        REQUEST_COUNT.labels(method=method, endpoint=endpoint, status=status).inc()
    except Exception:
        pass


def inc_auth_decision(outcome: str):
    try:
        AUTH_DECISIONS.labels(outcome=outcome).inc()
    except Exception:
        pass


def inc_token_issued():
    try:
        TOKENS_ISSUED.inc()
    except Exception:
        pass


def inc_prompt_fallback(name: str):
    try:
        PROMPT_FALLBACKS.labels(name=name).inc()
    except Exception:
        pass


def observe_llm_call(start_ts: float, provider: str, outcome: str):
    try:
        LLM_LATENCY.labels(provider=provider).observe(time.time() - start_ts)
        LLM_CALLS.labels(provider=provider, outcome=outcome).inc()
    except Exception:
        pass


def prometheus_metrics_response() -> Tuple[bytes, str]:
    """Return (body_bytes, content_type) for Prometheus scrape."""
    try:
        return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
    except Exception:
        return b"", CONTENT_TYPE_LATEST
