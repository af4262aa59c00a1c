from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import uuid
from contextlib import asynccontextmanager
from database import database
from models import ErrorCode
from routes import auth, quotes, public, bookings, branding, subscription, webhooks
from utils.errors import FwdLinkError

import os
import logging
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting FwdLink API")
    if os.getenv("PYTEST_RUNNING"):
        logger.info("PYTEST_RUNNING set - skipping MongoDB connection")
    else:
        await database.connect()

    if not os.getenv("BILLING_WEBHOOK_SECRET"):
        logger.warning("BILLING_WEBHOOK_SECRET is not set. Billing webhooks will be rejected.")

    yield

    # Shutdown
    logger.info("Shutting down FwdLink API")
    await database.close()

# Create FastAPI app
app = FastAPI(
    title="FwdLink API",
    description="Shareable freight quotations for forwarders",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router)
app.include_router(quotes.router)
app.include_router(public.router)
app.include_router(bookings.router)
app.include_router(branding.router)
app.include_router(subscription.router)
app.include_router(webhooks.router)

# Root endpoint
@app.get("/api")
async def root():
    return {
        "service": "FwdLink",
        "tagline": "Professional freight quotes in 10 seconds",
        "version": "1.0.0",
        "status": "operational"
    }

# Health check
@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": os.getenv("ENVIRONMENT", "development")
    }


@app.exception_handler(FwdLinkError)
async def fwdlink_exception_handler(request: Request, exc: FwdLinkError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Validation error handler: request_id ties the log line to the response
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = str(uuid.uuid4())
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
        for e in exc.errors()
    ]
    logger.warning(
        "Validation failed request_id=%s path=%s errors=%s",
        request_id,
        request.url.path,
        [(e["loc"], e["msg"]) for e in errors],
    )
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": "Invalid input",
            "error_code": ErrorCode.VALIDATION_FAILED.value,
            "details": errors,
            "request_id": request_id,
        },
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8001,
        reload=os.getenv("ENVIRONMENT") == "development"
    )
