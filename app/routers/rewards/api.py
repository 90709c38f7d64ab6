from fastapi import APIRouter

from . import daily

router = APIRouter()
router.include_router(daily.router)
