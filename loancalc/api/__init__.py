"""
Loan Calculation API Application Factory
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from . import dependencies
from .loans import router as loans_router
from .calculations import router as calculations_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Close the calculation service HTTP client on shutdown"""
    yield
    await dependencies.calculation_service.close()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Loan Calculation API",
        description="Interest, penalty, fee, disbursal and pre-closure calculations for loans",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(calculations_router, prefix="/calculations", tags=["Calculations"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "loancalc_api",
            "version": __version__
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Loan Calculation API",
            "version": __version__,
            "description": "Loan financial calculation subsystem",
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "loans": "/loans",
                "calculations": "/calculations",
            }
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8091, debug: bool = False, log_level: str = "info"):
    """Run the FastAPI server"""
    uvicorn.run(
        "loancalc.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level=log_level
    )
