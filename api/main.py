"""
BugSnap API - bug report export service

Single FastAPI application with route groups:
- /api/exports: Export jobs and AI drafts
- /api/integrations: Credential checks, destination discovery, stored config
- /api/proxy: Relay for browser clients blocked by CORS
"""

import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Configure logging - ensure INFO level logs are visible
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from routes import exports, integrations, proxy

VERSION = "1.0.0"

app = FastAPI(
    title="BugSnap API",
    description="Export annotated screenshots as bug reports",
    version=VERSION,
)

# CORS - allow frontend origins (comma-separated BUGSNAP_CORS_ORIGINS)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.getenv("BUGSNAP_CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
        if origin.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health():
    return {"status": "ok", "version": VERSION}


# Mount routers
app.include_router(exports.router, prefix="/api", tags=["exports"])
app.include_router(integrations.router, prefix="/api", tags=["integrations"])
app.include_router(proxy.router, prefix="/api/proxy", tags=["proxy"])
