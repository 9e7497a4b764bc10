from fastapi import APIRouter
from app.features.violation.routes import router as violations_router
from app.features.dispute.routes import router as disputes_router
from app.features.payment.routes import router as payments_router
from app.features.notification.routes import router as notifications_router

api_router = APIRouter()

api_router.include_router(violations_router, prefix="/violations", tags=["Violations"])
api_router.include_router(disputes_router, tags=["Disputes"])
api_router.include_router(payments_router, prefix="/payments", tags=["Payments"])
api_router.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])
