# API routes
from atelie.api.routes import dashboard
from atelie.api.routes import health
from atelie.api.routes import session
from atelie.api.routes import profiles
from atelie.api.routes import pieces
from atelie.api.routes import subscription
from atelie.api.routes import webhooks_mercadopago

__all__ = ["dashboard", "health", "session", "profiles", "pieces", "subscription", "webhooks_mercadopago"]
