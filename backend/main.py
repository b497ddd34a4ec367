from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv
import logging

from core.config import cors_origins, data_source
from server.api import router as charts_router

logger = logging.getLogger("uvicorn.error")
load_dotenv()
app = FastAPI(title="Book Dashboard", description="Genre, rating and multivariate views of a book table")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount the chart API router
app.include_router(charts_router)


@app.get("/health")
async def health():
    return {"ok": True, "data_source": data_source()}
