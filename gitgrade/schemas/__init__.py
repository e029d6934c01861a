from .analysis import AnalyzeRequest
from .payment import CheckoutSession, CreateCheckoutRequest
from .profile import ProfileSnapshot, RepositorySnapshot

__all__ = [
    "AnalyzeRequest",
    "CheckoutSession",
    "CreateCheckoutRequest",
    "ProfileSnapshot",
    "RepositorySnapshot",
]
