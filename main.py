from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import SQLModel
import models.shop
import models.visit  # Ensure these models are known by SQLModel for table creation
from db.session import engine
from contextlib import asynccontextmanager
from api.visit_routes import router as visit_router
from api.shop_routes import router as shop_router
from api.health_routes import router as health_router
from core.errors import ValidationError
import logging
import os
from dotenv import load_dotenv

# This file is the control center of the whole application

# Load environment variables from .env file, if it exists
load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

# Default values can be provided if the env var is not set
DEV_DOMAIN = os.getenv("DEV_DOMAIN", "http://localhost:5173")
PRODUCTION_DOMAIN = os.getenv("PRODUCTION_DOMAIN")

# Construct the list of allowed origins, always including both dev and production
allowed_origins_list = [
    DEV_DOMAIN,
    PRODUCTION_DOMAIN,
    "http://localhost:3000",  # Additional fallback for React dev
    "http://127.0.0.1:5173",  # Additional fallback for Vite dev
]

# Remove any None values and duplicates
allowed_origins_list = list(set([origin for origin in allowed_origins_list if origin]))

logger.info(f"CORS: Allowing origins: {allowed_origins_list}")

# When We Start, Create the DB Tables if they don't exist
@asynccontextmanager
async def lifespan(app: FastAPI):

    SQLModel.metadata.create_all(engine)

    # (would do shutdown cleanup here if needed)
    yield


# Starts Fast API Up; Init
app = FastAPI(lifespan=lifespan)

# Allow requests from the mobile / web dev servers & production
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins_list, # Use the constructed list
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request body / query validation failures share the domain error envelope
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=ValidationError.http_status,
        content={
            "detail": {
                "code": ValidationError.code,
                "message": "Request validation failed",
                "errors": errors,
            }
        },
    )


# Anything unexpected is logged here and never leaks internals to the client
@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"detail": {"code": "internal_error", "message": "Internal server error"}},
    )


# Connects Routes to main app
app.include_router(health_router, prefix="/api/health", tags=["Health"])
app.include_router(visit_router, prefix="/api/manager/visits", tags=["Visits"])
app.include_router(shop_router, prefix="/api/manager/shops", tags=["Shops", "Geofence"])
