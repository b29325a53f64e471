from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from votecounter import __version__
from votecounter.api.v1 import router as v1_router
from votecounter.schemas import HealthResponse
from votecounter.services.sessions import get_registry
from votecounter.utils.logging import configure_logging

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Save the pick ledgers of snapshots still open at shutdown
    get_registry().close_all()


app = FastAPI(
    title="VoteCounter Backend",
    description="Color region picking, palette training and vote card classification",
    version=__version__,
    lifespan=lifespan
)

# Add CORS middleware with basic configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(v1_router)


@app.get("/healthz", response_model=HealthResponse)
def health_check():
    """Health check endpoint"""
    return HealthResponse(
        status="ok",
        service="votecounter",
        version=__version__,
        open_snapshots=len(get_registry())
    )


@app.get("/")
def root():
    """Root endpoint"""
    return {
        "message": "VoteCounter Backend API",
        "version": __version__,
        "docs": "/docs"
    }
