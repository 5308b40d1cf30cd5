from fastapi import APIRouter, status

from app.features.quota.services.quota_table import get_quota_table
from app.platform.feature_flags import enabled_features
from app.platform.response import api_response


router = APIRouter()

@router.get("/health", tags=["health"])
async def health_check():
    table = get_quota_table()
    return api_response(
        data={
            "status": "ok",
            "service": "ADAShield",
            "features": enabled_features(),
            "quotaVersion": table.version,
        },
        message="Service is healthy",
        status_code=status.HTTP_200_OK,
    )
