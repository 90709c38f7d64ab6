from fastapi import APIRouter

from . import blocks, chats, gifts, messages

router = APIRouter()
router.include_router(messages.router)
router.include_router(chats.router)
router.include_router(blocks.router)
router.include_router(gifts.router)
