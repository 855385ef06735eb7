from src.api.routes.account import router as account_router
from src.api.routes.billing import router as billing_router
from src.api.routes.domains import router as domains_router
from src.api.routes.sites import router as sites_router
from src.api.routes.webhooks import router as webhooks_router

__all__ = [
    "account_router",
    "billing_router",
    "domains_router",
    "sites_router",
    "webhooks_router",
]
