"""
HEARDROP Backend — ORM Models
===============================

Importing this package registers every table with `Base.metadata`, which
Alembic autogenerate and the test fixtures both rely on.
"""

from heardrop.models.analytics import AffiliateEvent
from heardrop.models.brand import Brand
from heardrop.models.contact import ContactSubmission
from heardrop.models.drop import Drop
from heardrop.models.favorites import DropReminder, FavoriteBrand, FavoriteShop
from heardrop.models.journey import SavedJourney
from heardrop.models.notification import Notification
from heardrop.models.security import IpLoginAttempt, LoginAttempt, SecurityAuditLog
from heardrop.models.shop import Shop
from heardrop.models.spot import SpotLike, SpotPost, SpotPostBrand
from heardrop.models.user import AuthSession, User, UserRole

__all__ = [
    "AffiliateEvent",
    "AuthSession",
    "Brand",
    "ContactSubmission",
    "Drop",
    "DropReminder",
    "FavoriteBrand",
    "FavoriteShop",
    "IpLoginAttempt",
    "LoginAttempt",
    "Notification",
    "SavedJourney",
    "SecurityAuditLog",
    "Shop",
    "SpotLike",
    "SpotPost",
    "SpotPostBrand",
    "User",
    "UserRole",
]
