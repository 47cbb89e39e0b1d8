from gigmarket.reviews.models import Review
from gigmarket.reviews.store import RatingSummary, ReviewStore

__all__ = ["Review", "ReviewStore", "RatingSummary"]
