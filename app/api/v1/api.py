from fastapi import APIRouter
from app.api.v1 import auth, payments, subscription

api_router = APIRouter()

# Include all v1 routers
api_router.include_router(auth.router)
api_router.include_router(payments.router)
api_router.include_router(subscription.router)
