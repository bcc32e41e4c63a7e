"""Models for checkout sessions and confirmed payments"""
from typing import TypedDict, Optional


class CheckoutMetadata(TypedDict, total=False):
    """Metadata bag attached to a Stripe checkout session"""
    tier: str
    endpoint: str
    ref: str
    name: str
    message: str


class PaidSession(TypedDict):
    """Trusted view of a paid checkout session (the fulfillment event)"""
    session_id: str
    tier: str
    endpoint: str
    amount: int  # minor units
    currency: str
    payment_method: str
    customer_email: Optional[str]
    metadata: dict[str, str]


class IssuedKey(TypedDict):
    key: str
    tier: str
    endpoint: str
    stored: bool


class RoleGrant(TypedDict):
    member_id: int
    member: str
    role_id: int
    # casefolded username, global name and nickname of the member
    aliases: list[str]
