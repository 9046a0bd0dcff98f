import logging
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import GEMINI_MODEL, GEMINI_FALLBACK_MODEL, MIN_CREDITS_TO_GENERATE
from routes.billing import router as billing_router
from routes.generation import router as generation_router
from routes.projects import router as projects_router
from routes.users import router as users_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler('nuvix.log')
    ]
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Nuvix Backend",
    description="AI UI designer: streams generated screens as HTML frames, billed in credits",
    version="1.0.0"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(users_router)
app.include_router(projects_router)
app.include_router(generation_router)
app.include_router(billing_router)


@app.on_event("startup")
async def startup_event():
    logger.info("✅ Nuvix Backend started successfully")
    logger.info(f"✅ Default model: {GEMINI_MODEL}")
    logger.info(f"✅ Fallback model: {GEMINI_FALLBACK_MODEL}")

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    logger.debug("Health check requested")
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "model": GEMINI_MODEL,
    }

@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "message": "Nuvix Backend API",
        "version": "1.0.0",
        "model": GEMINI_MODEL,
        "min_credits_to_generate": MIN_CREDITS_TO_GENERATE,
        "endpoints": {
            "chat": "/api/chat",
            "projects": "/api/projects",
            "generate": "/api/projects/{project_id}/generate",
            "health": "/health",
            "users": "/users",
            "billing": "/billing",
        },
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
