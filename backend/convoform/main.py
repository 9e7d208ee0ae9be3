"""
convoform API - reference forms and AI wording services for the authoring engine
"""

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

# Load environment variables from .env file
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

from convoform.config import settings
from convoform.routers import ai, forms, health


# Lifecycle management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown"""
    settings.log_configuration()
    logger.info("convoform API started")
    yield
    logger.info("convoform API shutdown complete")


# Initialize FastAPI app
app = FastAPI(
    title="convoform API",
    description="Forms persistence and AI wording services for conversational forms",
    version="1.0.0",
    lifespan=lifespan,
)

# =============================================================================
# CORS Configuration
# =============================================================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With"],
)

# =============================================================================
# Routers
# =============================================================================
app.include_router(health.router)
app.include_router(forms.router)
app.include_router(ai.router)

# Uploaded visuals
os.makedirs(settings.visuals_dir, exist_ok=True)
app.mount("/visuals", StaticFiles(directory=settings.visuals_dir), name="visuals")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
