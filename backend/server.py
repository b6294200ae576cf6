"""
FastAPI server for PromptCraft Studio - prompt chain and prompt testing API
"""
import logging
from pathlib import Path
from dotenv import load_dotenv
from contextlib import asynccontextmanager

# Load .env from root directory (parent of backend/)
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from chain_executor import ChainError, ChainExecutor, ChainValidationError
from chain_generator import DEFAULT_TARGET_MODEL, ChainGenerator
from llm_client import get_llm_client
from logging_config import generate_request_id, request_id_var, set_request_id, setup_logging
from model_catalog import list_models
from models import ChainGenerateRequest, ChainReport, ChainTestRequest, PromptTestRequest
from prompt_tester import PromptTestError, PromptTester
from shared_settings import get_settings, resolve_credentials

settings = get_settings()
setup_logging(
    level=settings["log_level"],
    json_format=settings["log_format"] == "json",
    log_file=settings["log_file"]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log startup configuration"""
    logger.info(
        f"PromptCraft API starting (step timeout {settings['step_timeout_seconds']:g}s, "
        f"OpenAI key {'set' if settings['openai_api_key'] else 'not set'}, "
        f"Anthropic key {'set' if settings['anthropic_api_key'] else 'not set'})"
    )
    yield
    logger.info("PromptCraft API stopped")


app = FastAPI(title="PromptCraft Studio - Prompt Testing API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings["cors_origins"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize LLM client
llm_client = get_llm_client()


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Tag every request (and its log records) with a correlation id"""
    request_id = request.headers.get("X-Request-ID") or generate_request_id()
    token = set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(ChainError)
async def chain_error_handler(request: Request, exc: ChainError):
    logger.warning(f"Rejected chain request: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def _validation_message(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in error.errors()
    )


@app.get("/")
async def root():
    return {"message": "PromptCraft Studio API"}


@app.get("/api/health")
async def health():
    return {"status": "ok"}


@app.get("/api/models")
async def get_models():
    """Models the studio can route to, per provider"""
    return {"providers": list_models()}


# ============================================================================
# PROMPT CHAINS
# ============================================================================

@app.post("/api/test-prompt-chain")
async def test_prompt_chain(request: Request):
    """Run every step of a prompt chain in order and report the results"""
    try:
        body = await request.json()
        if not isinstance(body, dict):
            raise ValueError("request body must be a JSON object")

        if not body.get("steps"):
            raise ChainValidationError("Chain steps are required")

        try:
            chain_request = ChainTestRequest.model_validate(body)
        except ValidationError as e:
            raise ChainValidationError(f"Invalid chain request: {_validation_message(e)}") from e

        credentials = resolve_credentials(chain_request.user_api_key, chain_request.anthropic_api_key)
        executor = ChainExecutor(
            llm_client=llm_client,
            step_timeout_seconds=get_settings()["step_timeout_seconds"]
        )
        report = await executor.execute(chain_request.steps, credentials, chain_request.chain_title)
        return report.to_response()

    except ChainError:
        raise
    except Exception as e:
        logger.exception("Error testing prompt chain")
        envelope = ChainReport.failure_envelope(f"Failed to test chain: {e}")
        return JSONResponse(status_code=500, content=envelope.to_response())


@app.post("/api/generate-prompt-chain")
async def generate_prompt_chain(generate_request: ChainGenerateRequest):
    """Draft a prompt chain for a goal; the result can be edited and sent to /api/test-prompt-chain"""
    if not generate_request.goal:
        return JSONResponse(status_code=400, content={"error": "Goal is required"})

    credentials = resolve_credentials(openai_api_key=generate_request.openai_api_key)
    generator = ChainGenerator(
        llm_client=llm_client,
        timeout_seconds=get_settings()["step_timeout_seconds"]
    )
    chain = await generator.generate(
        generate_request.goal,
        generate_request.target_model or DEFAULT_TARGET_MODEL,
        credentials.openai_api_key
    )
    return chain.to_response()


# ============================================================================
# SINGLE PROMPT TESTS
# ============================================================================

@app.post("/api/test-prompt")
async def test_prompt(test_request: PromptTestRequest):
    """Run one prompt (plus optional test input) against one model"""
    if not test_request.prompt:
        return JSONResponse(status_code=400, content={"error": "Prompt is required"})

    credentials = resolve_credentials(test_request.openai_api_key, test_request.anthropic_api_key)
    tester = PromptTester(
        llm_client=llm_client,
        timeout_seconds=get_settings()["step_timeout_seconds"]
    )

    try:
        result = await tester.run(test_request, credentials)
    except PromptTestError as e:
        return JSONResponse(status_code=500, content=e.result.to_response())

    return result.to_response()
