import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import router as api_router
from app.core.settings import SETTINGS

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
]

logging.basicConfig(level=SETTINGS.log_level)

app = FastAPI(title="chat-proxy-service", version="v1")
app.add_middleware(
    CORSMiddleware,
    allow_origins=SETTINGS.cors_allow_origins or DEFAULT_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["x-trace-id", "x-request-id"],
)
app.include_router(api_router)
