from __future__ import annotations

from fastapi import APIRouter, Depends

from api.deps import require_staff
from api.routes import blocks


api_router = APIRouter()

# Registrar/admin staff only.
_protected = [Depends(require_staff)]
api_router.include_router(blocks.router, prefix="/blocks", tags=["blocks"], dependencies=_protected)
