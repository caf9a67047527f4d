"""FastAPI server exposing the Butler automation gateway."""

import asyncio
import hmac
import os
import time
import uuid
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from butler.core.config import AppConfig, load_config
from butler.core.errors import ApplyFailed, ButlerError, GitHubError, RequestTimeout, Unauthorized
from butler.core.logging import get_logger, redact_sensitive, reset_request_id, set_request_id, setup_logging
from butler.models import ApplyRequest, PlanRequest, RunRequest
from butler.services.apply import ApplyService
from butler.services.github_auth import build_token_provider
from butler.services.planner import build_plan
from butler.services.runner import RunExecutor
from butler.tools.github import GitHubClient
from butler.tools.path_gate import PathGate

logger = get_logger(__name__)

GitHubFactory = Callable[[], GitHubClient]


def _default_github_factory(config: AppConfig) -> GitHubFactory:
    try:
        token_provider = build_token_provider(config.github)
    except ValueError as e:
        logger.warning(f"GitHub credentials not configured: {e}")
        token_provider = None

    def factory() -> GitHubClient:
        if token_provider is None:
            raise ApplyFailed("GitHub credentials are not configured")
        return GitHubClient(
            token_provider=token_provider,
            api_url=config.github.api_url,
            max_retries=config.github.max_retries,
            timeout=config.github.http_timeout_seconds,
        )

    return factory


async def _with_deadline(work: Awaitable[Any], seconds: float) -> Any:
    try:
        return await asyncio.wait_for(work, timeout=seconds)
    except asyncio.TimeoutError:
        raise RequestTimeout(
            f"request exceeded {seconds:g}s; remote state is unknown, check the branch",
        )


def create_app(
    config: Optional[AppConfig] = None,
    github_factory: Optional[GitHubFactory] = None,
) -> FastAPI:
    """Build the application with explicit configuration and GitHub client factory."""
    config = config or load_config()
    github_factory = github_factory or _default_github_factory(config)
    gate = PathGate(
        config.gate.allow_patterns,
        config.gate.workflow_patterns,
        workflow_key=config.security.workflow_edit_key,
    )
    started = time.monotonic()
    timeout = config.server.request_timeout_seconds

    app = FastAPI(title="Butler API", version="1.0.0")
    app.state.config = config
    app.state.gate = gate

    if config.server.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(config.server.cors_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        token = set_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            reset_request_id(token)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(ButlerError)
    async def butler_error_handler(request: Request, exc: ButlerError):
        if exc.status_code >= 500:
            logger.error(f"{request.url.path} failed: {exc.error}: {redact_sensitive(exc.message)}")
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))

    @app.exception_handler(GitHubError)
    async def github_error_handler(request: Request, exc: GitHubError):
        message = redact_sensitive(str(exc))
        logger.error(f"{request.url.path} failed on GitHub call: {message}")
        return JSONResponse(status_code=500, content=ApplyFailed(message).to_dict())

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"{request.url.path} failed unexpectedly: {type(exc).__name__}")
        message = redact_sensitive(f"{type(exc).__name__}: {exc}")
        return JSONResponse(status_code=500, content=ApplyFailed(message).to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [{k: v for k, v in e.items() if k != "ctx"} for e in exc.errors()]
        return JSONResponse(
            status_code=400,
            content={"error": "invalid", "details": jsonable_encoder(errors)},
        )

    async def require_token(x_butler_token: Optional[str] = Header(None)) -> None:
        expected = config.security.butler_token
        if not expected or not x_butler_token:
            raise Unauthorized()
        if not hmac.compare_digest(x_butler_token.encode("utf-8"), expected.encode("utf-8")):
            raise Unauthorized()

    @app.get("/", response_class=PlainTextResponse)
    async def root():
        return "Butler is live. Use /health or call /plan, /apply and /run with X-Butler-Token."

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"ok": True}

    @app.get("/status")
    async def status():
        return {
            "ok": True,
            "revision": config.server.revision,
            "allowPatterns": list(config.gate.allow_patterns),
            "workflowPatterns": list(config.gate.workflow_patterns),
            "uptimeSeconds": round(time.monotonic() - started, 1),
        }

    @app.post("/plan", dependencies=[Depends(require_token)])
    async def plan(body: PlanRequest):
        return build_plan(body, config)

    @app.post("/apply", dependencies=[Depends(require_token)])
    async def apply(
        body: ApplyRequest,
        x_butler_approve_workflows: Optional[str] = Header(None),
    ):
        async def work():
            async with github_factory() as github:
                service = ApplyService(config, github, gate)
                return await service.apply(body, workflow_approval=x_butler_approve_workflows)

        # Gate failures must not wait on the deadline or touch GitHub
        gate.check([edit.path for edit in body.edits], x_butler_approve_workflows)
        result = await _with_deadline(work(), timeout)
        return result.to_response()

    @app.post("/run", dependencies=[Depends(require_token)])
    async def run(
        body: RunRequest,
        x_butler_approve_workflows: Optional[str] = Header(None),
    ):
        async def work():
            async with github_factory() as github:
                executor = RunExecutor(config, github, gate)
                return await executor.run(body, workflow_approval=x_butler_approve_workflows)

        return await _with_deadline(work(), timeout)

    return app


def _load_env_files() -> None:
    root = Path(__file__).parent.parent
    root_env = root / ".env"
    if root_env.exists():
        load_dotenv(root_env, override=False)


def main() -> None:
    """Run the server with uvicorn."""
    import uvicorn

    _load_env_files()
    config = load_config()
    setup_logging(config.server.log_level, structured=config.server.structured_logs)
    port = int(os.getenv("PORT", "8787"))
    logger.info(f"Butler listening on :{port} (revision {config.server.revision})")
    uvicorn.run(create_app(config), host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
