import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from starlette.middleware.sessions import SessionMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from blueprint.core import config
from blueprint.services.tree_repository import TreeRepository
from blueprint.services.session_store import JsonSessionStore
from blueprint.services.session_service import WizardSessionService
from blueprint.services.llm_service import GeminiAgent
from blueprint.services.blueprint_service import BlueprintGenerator
from blueprint.routers import decision_tree

config.configure_logging()
logger = logging.getLogger(__name__)

# Services. A broken decision tree raises ConfigurationError here, at startup.
tree_repository = TreeRepository.from_file(config.DECISION_TREE_FILE)
session_store = JsonSessionStore(config.SESSIONS_DIR)
session_service = WizardSessionService(tree_repository, session_store)
agent = GeminiAgent()
blueprint_generator = BlueprintGenerator(agent)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Let in-flight best-effort saves finish before the loop goes away.
    await app.state.session_service.wait_for_saves()


app = FastAPI(lifespan=lifespan)

# Session Middleware
# Only used to remember the caller's active wizard session id.
https_only = config.ORIGIN.startswith("https")
app.add_middleware(
    SessionMiddleware,
    secret_key=config.SESSION_SECRET,
    session_cookie="blueprint_session",
    same_site="lax",
    https_only=https_only
)

# Security Headers Middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if https_only:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        # Content Security Policy (the only HTML served is the OpenAPI docs page)
        csp = (
            "default-src 'self'; "
            "script-src 'self' 'unsafe-inline' cdn.jsdelivr.net; "
            "style-src 'self' 'unsafe-inline' cdn.jsdelivr.net; "
            "img-src 'self' data: fastapi.tiangolo.com; "
            "frame-ancestors 'none';"
        )
        response.headers["Content-Security-Policy"] = csp
        return response

app.add_middleware(SecurityHeadersMiddleware)

# App State
app.state.tree_repository = tree_repository
app.state.session_service = session_service
app.state.agent = agent
app.state.blueprint_generator = blueprint_generator

# Include Routers
app.include_router(decision_tree.router, prefix="/api/decision-tree")

@app.get("/health", include_in_schema=False)
async def health():
    return {"status": "ok"}

if __name__ == "__main__":
    import uvicorn
    import argparse

    parser = argparse.ArgumentParser(description="Run the blueprint decision tree service")
    parser.add_argument("--port", type=int, default=8000, help="Port to run the service on")
    parser.add_argument("--host", type=str, default="0.0.0.0", help="Host to bind to")
    args = parser.parse_args()

    uvicorn.run(app, host=args.host, port=args.port)
