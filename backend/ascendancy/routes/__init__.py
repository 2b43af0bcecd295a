from ascendancy.routes.payment import router as payment_router
from ascendancy.routes.subscription import router as subscription_router
from ascendancy.routes.auth import router as auth_router
from ascendancy.routes.investor import router as investor_router

__all__ = ["payment_router", "subscription_router", "auth_router", "investor_router"]
