from pydantic import Field

from .base import DocumentSchema


class GeneralSettings(DocumentSchema):
    company_name: str = "Lingland Interpreting"
    support_email: str = "support@example.com"
    business_address: str = ""


class FinanceSettings(DocumentSchema):
    currency: str = "GBP"
    vat_rate: float = 0.0
    vat_number: str = ""
    invoice_prefix: str = "INV"
    next_invoice_number: int = 1
    payment_terms_days: int = 30
    invoice_footer_text: str = ""


class OperationsSettings(DocumentSchema):
    min_booking_duration_minutes: int = 30
    cancellation_window_hours: int = 24
    time_increment_minutes: int = 15
    default_online_platform_url: str = ""


class SystemSettings(DocumentSchema):
    general: GeneralSettings = Field(default_factory=GeneralSettings)
    finance: FinanceSettings = Field(default_factory=FinanceSettings)
    operations: OperationsSettings = Field(default_factory=OperationsSettings)


class ConnectionStatus(DocumentSchema):
    online: bool
    mode: str
