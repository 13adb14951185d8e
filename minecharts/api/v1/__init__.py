"""API v1 router."""

from fastapi import APIRouter

from minecharts.api.v1.api_keys import router as api_keys_router
from minecharts.api.v1.auth import router as auth_router
from minecharts.api.v1.servers import router as servers_router
from minecharts.api.v1.users import router as users_router

router = APIRouter()

router.include_router(auth_router, prefix="/auth", tags=["auth"])
router.include_router(api_keys_router, prefix="/apikeys", tags=["apikeys"])
router.include_router(users_router, prefix="/users", tags=["users"])
router.include_router(servers_router, prefix="/servers", tags=["servers"])
