from fastapi import APIRouter

from dbpool.api.routes import pool, utils

api_router = APIRouter()
api_router.include_router(utils.router)
api_router.include_router(pool.router)
