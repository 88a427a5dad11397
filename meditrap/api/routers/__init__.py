"""API routers for MediTrap."""

from . import auth
from . import health
from . import purchasers
from . import purchasing_card
from . import staff
from . import stockists
from . import users
from . import verify

__all__ = [
    "auth",
    "health",
    "purchasers",
    "purchasing_card",
    "staff",
    "stockists",
    "users",
    "verify",
]
