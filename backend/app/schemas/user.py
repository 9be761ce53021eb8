from typing import List, Optional

from pydantic import BaseModel

from ..models.user import UserRole
from .base import DocumentSchema


class Actor(BaseModel):
    """The caller of an operation, as resolved by the identity provider."""

    id: str
    role: UserRole
    display_name: str = ""
    # clients/{id} or interpreters/{id} record the user acts for
    profile_id: Optional[str] = None

    @property
    def party_id(self) -> str:
        return self.profile_id or self.id

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class Client(DocumentSchema):
    id: str
    company_name: str
    billing_address: Optional[str] = None
    payment_terms_days: Optional[int] = None
    contact_person: Optional[str] = None
    email: Optional[str] = None
    default_cost_code_type: Optional[str] = None


class Interpreter(DocumentSchema):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    languages: List[str] = []
    regions: List[str] = []
    qualifications: List[str] = []
    status: str = "ACTIVE"
    is_available: bool = True
    postcode: Optional[str] = None
