from fastapi import APIRouter
from app.routers import cycles, scores

# Centralized API router hub
# Routers are aggregated here, and main.py only imports this single hub.
api_router = APIRouter()

api_router.include_router(cycles.router, tags=["Review Cycles"])
api_router.include_router(scores.router, tags=["Scores"])
