import uuid
from dataclasses import dataclass

BUSINESS = "business"
RETAILER = "retailer"


@dataclass(frozen=True)
class Actor:
    """Authenticated caller: a farm business (buyer) or a retailer (seller)."""

    role: str
    id: uuid.UUID

    @property
    def is_business(self) -> bool:
        return self.role == BUSINESS

    @property
    def is_retailer(self) -> bool:
        return self.role == RETAILER
