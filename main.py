"""
Receipt Line-Item API - Main Application
FastAPI application for recovering line items from raw OCR text

Run with: python main.py
Access API docs at: http://localhost:8000/docs
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from api.models import HealthResponse
from api.routes import router, rule_set
from utils import load_config, setup_logging

config = load_config()
setup_logging(config['logging']['file'], config['logging']['level'])

# Create FastAPI app
app = FastAPI(
    title="Receipt Line-Item API",
    description="Correct OCR errors and extract product line items from receipt text",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api/v1")


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Receipt Line-Item API",
        "version": "1.0.0",
        "rules_version": rule_set.version,
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    return HealthResponse()


if __name__ == "__main__":
    import uvicorn

    api_config = config['api']
    print("=" * 60)
    print(f"🧾 Receipt Line-Item API (rules v{rule_set.version})")
    print(f"📡 http://{api_config['host']}:{api_config['port']}/docs")
    print("=" * 60)

    uvicorn.run("main:app", host=api_config['host'], port=int(api_config['port']), reload=True)
