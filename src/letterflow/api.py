from fastapi import APIRouter

from letterflow.modules.recipients.router import router as recipients_router
from letterflow.modules.recommendations import router as recommendations_router
from letterflow.modules.recommendations.admin_router import router as admin_recommendations_router
from letterflow.modules.recommendations.recipient_router import router as recipient_portal_router

api_router = APIRouter()

api_router.include_router(recipients_router, prefix="/recipients", tags=["Recipients"])

api_router.include_router(
    recommendations_router,
    prefix="/recommendations/requests",
    tags=["Recommendations"],
)

api_router.include_router(
    recipient_portal_router,
    prefix="/recommendations/recipient",
    tags=["Recipient Portal"],
)

api_router.include_router(
    admin_recommendations_router,
    prefix="/admin/recommendations",
    tags=["Admin - Recommendations"],
)
