# mailgate/app.py
import time
from typing import Dict, List, Optional

# Load .env BEFORE any mailgate imports (monitoring reads env vars at import time)
from dotenv import load_dotenv
load_dotenv()

from fastapi import Depends, FastAPI, Request, Path
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mailgate import monitoring
from mailgate.auth import AuthGateMiddleware, Caller, require_caller
from mailgate.config import Settings
from mailgate.db import Database
from mailgate.email_processor import EmailProcessingError, EmailProcessor, FailureKind
from mailgate.errors import ConfigurationError
from mailgate.llm_wrapper import LLMClient
from mailgate.prompts import PromptErrorKind, PromptResolver
from mailgate.schemas import (
    EmailRequest, EmailResponse, PromptRequest, PromptResponse, TokenRequest, TokenResponse,
)
from mailgate.tokens import TokenIssuer

E_VALIDATION = "E_VALIDATION"
E_MISSING_KEY = "E_MISSING_KEY"
E_INVALID_KEY = "E_INVALID_KEY"
E_DUPLICATE_NAME = "E_DUPLICATE_NAME"
E_NOT_FOUND = "E_NOT_FOUND"
E_INTERNAL = "E_INTERNAL"

_PROCESSING_FAILURES = {
    FailureKind.LLM_UNAVAILABLE: (503, "E_LLM_UNAVAILABLE"),
    FailureKind.LLM_ERROR: (500, "E_LLM_ERROR"),
    FailureKind.LOG_FAILED: (500, "E_LOG_FAILED"),
    FailureKind.UNEXPECTED: (500, E_INTERNAL),
}

_PROMPT_FAILURES = {
    PromptErrorKind.DUPLICATE_NAME: (400, E_DUPLICATE_NAME),
    PromptErrorKind.NOT_FOUND: (404, E_NOT_FOUND),
}


_HTTP_ERROR_CODES = {
    401: "E_UNAUTHORIZED",
    404: E_NOT_FOUND,
    405: "E_METHOD_NOT_ALLOWED",
    500: E_INTERNAL,
}

UNMATCHED_ENDPOINT = "unmatched"


def _error(status_code: int, error_code: str, message: str,
           headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "error_code": error_code, "message": message},
        headers=headers,
    )


def _endpoint_label(request: Request) -> str:
    """Route template (e.g. /api/prompt/{prompt_id}) so metric series stay bounded."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_ENDPOINT


def _internal_error() -> JSONResponse:
    return _error(500, E_INTERNAL, "Internal server error")


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None,
               llm_client: Optional[LLMClient] = None) -> FastAPI:
    """
    Build the service. Raises ConfigurationError when required settings are
    missing, so a misconfigured process fails before serving traffic.
    """
    settings = (settings or Settings.from_env()).validate()
    if not settings.api_key:
        monitoring.logger.warning("API_KEY is not configured; API key authentication will reject every request")

    database = database or Database(settings.database_url)
    issuer = TokenIssuer(settings)
    prompts = PromptResolver(database)
    processor = EmailProcessor(database, prompts, llm_client or LLMClient(settings))

    database.init_db()
    prompts.ensure_seed_prompt()

    app = FastAPI(
        title="Mailgate LLM Email Middleware",
        description="Forwards customer emails to an LLM with a managed system prompt",
        docs_url="/swagger",
        openapi_url="/swagger/v1/swagger.json",
        redoc_url=None,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.token_issuer = issuer
    app.state.prompts = prompts
    app.state.email_processor = processor

    # -----------------------------------------------------------------------
    # Middleware: auth gate runs inside the metrics middleware so 401s are counted
    # -----------------------------------------------------------------------
    app.add_middleware(AuthGateMiddleware, issuer=issuer, api_key_header=settings.api_key_header)

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start = time.time()
        method = request.method
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        except Exception:
            monitoring.logger.exception("Unhandled exception in request", extra={"path": request.url.path})
            raise
        finally:
            # the router records the matched route in the shared scope; gate rejections never reach it
            monitoring.observe_request(start, _endpoint_label(request), method, status)

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        problems = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ())[1:])
            problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        return _error(400, E_VALIDATION, "; ".join(problems) or "Invalid request")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        code = _HTTP_ERROR_CODES.get(exc.status_code, "E_HTTP")
        return _error(exc.status_code, code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        monitoring.logger.exception("Unhandled error", extra={"path": request.url.path})
        return _internal_error()

    # -----------------------------------------------------------------------
    # Auth
    # -----------------------------------------------------------------------
    @app.post("/api/auth/token", response_model=TokenResponse, tags=["auth"])
    def issue_token(req: TokenRequest):
        """
        POST /api/auth/token
        Body: { "apiKey": "..." }
        Exchanges the shared API key for a bearer token.
        """
        if not req.api_key:
            return _error(400, E_MISSING_KEY, "API key is required")
        if not issuer.validate_shared_secret(req.api_key):
            monitoring.logger.warning("Token requested with invalid API key")
            return _error(401, E_INVALID_KEY, "Invalid API key")
        try:
            issued = issuer.issue_token()
        except ConfigurationError:
            monitoring.logger.exception("Cannot issue token: configuration error")
            return _error(500, "E_CONFIG", "Error processing request")
        except Exception:
            monitoring.logger.exception("Unexpected error issuing token")
            return _internal_error()
        monitoring.inc_token_issued()
        monitoring.logger.info("Bearer token issued")
        return TokenResponse(token=issued.token, expires_at=issued.expires_at)

    # -----------------------------------------------------------------------
    # Prompts
    # -----------------------------------------------------------------------
    @app.get("/api/prompt", response_model=List[PromptResponse], tags=["prompts"])
    def list_prompts(caller: Caller = Depends(require_caller)):
        try:
            return [PromptResponse.model_validate(p) for p in prompts.list_prompts()]
        except Exception:
            monitoring.logger.exception("Error listing prompts")
            return _internal_error()

    @app.get("/api/prompt/{prompt_id}", response_model=PromptResponse, tags=["prompts"])
    def get_prompt(prompt_id: int = Path(..., description="Prompt id"),
                   caller: Caller = Depends(require_caller)):
        try:
            prompt = prompts.get_prompt(prompt_id)
        except Exception:
            monitoring.logger.exception("Error fetching prompt", extra={"prompt_id": prompt_id})
            return _internal_error()
        if prompt is None:
            return _error(404, E_NOT_FOUND, "Prompt not found")
        return PromptResponse.model_validate(prompt)

    @app.post("/api/prompt", response_model=PromptResponse, status_code=201, tags=["prompts"])
    def create_prompt(req: PromptRequest, caller: Caller = Depends(require_caller)):
        try:
            result = prompts.create(req.name, req.content, req.is_active)
        except Exception:
            monitoring.logger.exception("Error creating prompt", extra={"prompt_name": req.name})
            return _internal_error()
        if not result.ok:
            status_code, code = _PROMPT_FAILURES[result.error]
            return _error(status_code, code, result.message)
        return PromptResponse.model_validate(result.prompt)

    @app.put("/api/prompt/{prompt_id}", response_model=PromptResponse, tags=["prompts"])
    def update_prompt(req: PromptRequest, prompt_id: int = Path(..., description="Prompt id"),
                      caller: Caller = Depends(require_caller)):
        try:
            result = prompts.update(prompt_id, req.name, req.content, req.is_active)
        except Exception:
            monitoring.logger.exception("Error updating prompt", extra={"prompt_id": prompt_id})
            return _internal_error()
        if not result.ok:
            status_code, code = _PROMPT_FAILURES[result.error]
            return _error(status_code, code, result.message)
        return PromptResponse.model_validate(result.prompt)

    # -----------------------------------------------------------------------
    # Email
    # -----------------------------------------------------------------------
    @app.post("/api/email/process", response_model=EmailResponse, tags=["email"])
    def process_email(req: EmailRequest, request: Request, caller: Caller = Depends(require_caller)):
        """
        POST /api/email/process
        Body: { "message": "..." }
        Returns the LLM reply and the request log id.
        """
        client_info = request.client.host if request.client else "unknown"
        try:
            result = processor.process(req.message, client_info)
        except EmailProcessingError as e:
            status_code, code = _PROCESSING_FAILURES[e.kind]
            return _error(status_code, code, e.message)
        return EmailResponse(response=result.response, request_id=result.request_id,
                             processed_at=result.processed_at)

    # -----------------------------------------------------------------------
    # Ops
    # -----------------------------------------------------------------------
    @app.get("/health", tags=["ops"])
    async def health():
        return {"status": "ok"}

    @app.get("/metrics", tags=["ops"])
    async def metrics():
        if not monitoring.PROMETHEUS_ENABLED:
            return PlainTextResponse("Prometheus disabled", status_code=404)
        payload, content_type = monitoring.prometheus_metrics_response()
        return Response(content=payload, media_type=content_type)

    return app
