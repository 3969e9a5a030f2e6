from fastapi import APIRouter

from voiden_scripting.api.routes import scripts

api_router = APIRouter()
api_router.include_router(scripts.router)
