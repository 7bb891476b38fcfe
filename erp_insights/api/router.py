from fastapi import APIRouter
from erp_insights.api.endpoints import analysis, auth, clients, users

api_router = APIRouter()

# Combine all sub-routers into one
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(analysis.router)
api_router.include_router(clients.router)
