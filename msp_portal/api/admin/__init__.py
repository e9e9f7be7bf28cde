from fastapi import APIRouter

from msp_portal.api.admin.companies import router as companies_router
from msp_portal.api.admin.users import router as users_router

router = APIRouter()
router.include_router(users_router)
router.include_router(companies_router)
