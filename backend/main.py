import logging
import os
import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.routers import chat, knowledge, llm_config, publications
from app.services.ai_gateway_service import ai_gateway_service
from app.services.publications_service import publications_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)

# Comma-separated list; "*" allows any origin
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        f"Starting with {publications_service.count()} publications, "
        f"model {ai_gateway_service.model} at {ai_gateway_service.base_url}"
    )
    yield
    logger.info("Shutting down")


app = FastAPI(title="Space Biology Knowledge Engine API", version="1.0.0", lifespan=lifespan)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    path = f"{request.method} {request.url.path}"
    logger.info(f">>> {path}")

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            f"!!! {path} failed after {time.perf_counter() - started:.3f}s: {e}",
            exc_info=True,
        )
        return JSONResponse(status_code=500, content={"detail": f"Internal server error: {str(e)}"})

    logger.info(f"<<< {path} - {response.status_code} in {time.perf_counter() - started:.3f}s")
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def read_root():
    return {"message": "Space Biology Knowledge Engine API", "status": "running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


for module in (chat, publications, knowledge, llm_config):
    app.include_router(module.router)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
