import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from arena.config import get_settings
from arena.database import Base, engine
from arena.errors import ArenaError
from arena.api import rounds, agents, leaderboard, trades

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Quant Arena API",
    description="Multi-agent trading simulation arena",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ArenaError)
async def arena_error_handler(request: Request, exc: ArenaError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.on_event("startup")
def create_tables():
    # Production schemas are managed by alembic; this covers fresh local databases
    Base.metadata.create_all(bind=engine)


# Include routers
app.include_router(rounds.router, prefix="/api/rounds", tags=["Rounds"])
app.include_router(agents.router, prefix="/api/rounds", tags=["Agents"])
app.include_router(leaderboard.router, prefix="/api/rounds", tags=["Leaderboard"])
app.include_router(leaderboard.global_router, prefix="/api/leaderboard", tags=["Leaderboard"])
app.include_router(trades.router, prefix="/api/trades", tags=["Trades"])


@app.get("/")
def root():
    return {"message": "Welcome to Quant Arena API"}


@app.get("/health")
def health_check():
    return {"status": "healthy"}
