from pydantic import BaseModel


class CreateCheckoutRequest(BaseModel):
    """Checkout for the full report of a completed analysis (external uuid)."""
    analysis_id: str


class CheckoutSession(BaseModel):
    session_id: str
    checkout_url: str
