from fastapi import APIRouter

from . import covers, lookup

router = APIRouter(prefix="/api")
router.include_router(lookup.router)
router.include_router(covers.router)
