"""Models package."""

from .user import User
from .movie import Movie
from .series import Series, Episode
from .media_asset import MediaAsset
from .order import Order
from .subscription import Subscription
from .promo_redemption import PromoRedemption
