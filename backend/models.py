from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator
from typing import Optional, List
from datetime import datetime, timezone
from enum import Enum
import uuid

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class SubscriptionStatus(str, Enum):
    FREE = "free"
    ACTIVE = "active"
    PAST_DUE = "past_due"

class AuthProvider(str, Enum):
    EMAIL = "email"
    GOOGLE = "google"

class ContainerType(str, Enum):
    GP20 = "20GP"
    GP40 = "40GP"
    HQ40 = "40HQ"

class Incoterms(str, Enum):
    EXW = "EXW"
    FCA = "FCA"
    FOB = "FOB"
    CFR = "CFR"
    CIF = "CIF"
    DAP = "DAP"
    DDP = "DDP"

class TransportMode(str, Enum):
    FCL = "FCL"
    LCL = "LCL"
    AIR = "AIR"

class Currency(str, Enum):
    USD = "USD"
    KRW = "KRW"
    EUR = "EUR"

class CostSection(str, Enum):
    ORIGIN = "ORIGIN"
    FREIGHT = "FREIGHT"
    DESTINATION = "DESTINATION"

class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"

class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"

class ErrorCode(str, Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    NOT_FOUND = "NOT_FOUND"
    LIMIT_REACHED = "LIMIT_REACHED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    DELIVERY_FAILED = "DELIVERY_FAILED"
    SIGNATURE_INVALID = "SIGNATURE_INVALID"
    CONFIG_MISSING = "CONFIG_MISSING"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    PRO_REQUIRED = "PRO_REQUIRED"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

# ============================================================================
# IDENTITY
# ============================================================================

HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"
MAX_LOGO_BASE64_LENGTH = 700000  # ~500KB once decoded


class Branding(BaseModel):
    """Custom branding shown on public quotes of Pro users."""
    model_config = ConfigDict(extra="ignore")

    company_name: Optional[str] = Field(default=None, max_length=100)
    logo_base64: Optional[str] = Field(default=None, max_length=MAX_LOGO_BASE64_LENGTH)
    primary_color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)
    contact_email: Optional[str] = Field(default=None, max_length=100)
    contact_phone: Optional[str] = Field(default=None, max_length=30)


class User(BaseModel):
    """Forwarder account. usage_count is the paywall counter and only ever grows."""
    model_config = ConfigDict(extra="ignore")

    user_id: str = Field(default_factory=lambda: f"USR-{uuid.uuid4().hex[:12].upper()}")
    email: EmailStr
    name: str
    image: Optional[str] = None
    provider: AuthProvider = AuthProvider.EMAIL
    email_verified_at: Optional[datetime] = None

    usage_count: int = Field(default=0, ge=0)
    subscription_status: SubscriptionStatus = SubscriptionStatus.FREE
    subscription_end_date: Optional[datetime] = None
    billing_customer_id: Optional[str] = None

    branding: Optional[Branding] = None

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    last_login_at: Optional[datetime] = None

    @field_validator("email")
    @classmethod
    def _lower_email(cls, v: str) -> str:
        return v.strip().lower()


class UserResponse(BaseModel):
    """Profile returned to the signed-in user."""
    user_id: str
    email: str
    name: str
    image: Optional[str] = None
    usage_count: int
    subscription_status: SubscriptionStatus
    subscription_end_date: Optional[datetime] = None
    created_at: datetime
    last_login_at: Optional[datetime] = None

    model_config = {"extra": "ignore"}


class MagicLinkRequest(BaseModel):
    email: EmailStr


class MagicLinkVerify(BaseModel):
    email: EmailStr
    token: str = Field(min_length=16)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
    is_new_user: bool = False


class BrandingUpdate(BaseModel):
    """Partial branding update. Omitted fields keep their stored value."""
    company_name: Optional[str] = None
    logo_base64: Optional[str] = None
    primary_color: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None

# ============================================================================
# QUOTATION
# ============================================================================

class Port(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    code: Optional[str] = None  # UN/LOCODE, e.g. KRPUS
    country: str = ""


class QuoteLineItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    section: CostSection = CostSection.FREIGHT
    name: str = Field(min_length=1)
    amount: float = Field(ge=0)
    currency: Currency = Currency.USD

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Line item name is required")
        return v


class Quotation(BaseModel):
    """Stored quotation document."""
    model_config = ConfigDict(extra="ignore")

    quotation_id: str = Field(default_factory=lambda: f"QTN-{uuid.uuid4().hex[:12].upper()}")
    short_id: str
    owner_id: str
    pol: Port
    pod: Port
    container_type: ContainerType = ContainerType.HQ40
    incoterms: Incoterms = Incoterms.FOB
    transport_mode: TransportMode = TransportMode.FCL
    line_items: List[QuoteLineItem] = Field(default_factory=list)
    price: float = Field(ge=0)
    remarks: str = Field(default="", max_length=500)
    valid_until: datetime
    views: int = Field(default=0, ge=0)

    # AIR freight
    gross_weight: Optional[float] = Field(default=None, ge=0)
    cbm: Optional[float] = Field(default=None, ge=0)
    chargeable_weight: Optional[float] = Field(default=None, ge=0)

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class QuotationCreate(BaseModel):
    """Create request. Omitted enums fall back to 40HQ / FOB / FCL."""
    model_config = ConfigDict(extra="ignore")

    pol: Port
    pod: Port
    container_type: Optional[ContainerType] = None
    incoterms: Optional[Incoterms] = None
    transport_mode: Optional[TransportMode] = None
    line_items: List[QuoteLineItem] = Field(default_factory=list)
    price: Optional[float] = Field(default=None, ge=0)
    remarks: Optional[str] = Field(default=None, max_length=500)
    valid_until: datetime
    gross_weight: Optional[float] = Field(default=None, ge=0)
    cbm: Optional[float] = Field(default=None, ge=0)


class QuotationUpdate(BaseModel):
    """Partial update. Only fields present in the request body are applied."""
    model_config = ConfigDict(extra="ignore")

    pol: Optional[Port] = None
    pod: Optional[Port] = None
    container_type: Optional[ContainerType] = None
    incoterms: Optional[Incoterms] = None
    transport_mode: Optional[TransportMode] = None
    line_items: Optional[List[QuoteLineItem]] = None
    price: Optional[float] = Field(default=None, ge=0)
    remarks: Optional[str] = Field(default=None, max_length=500)
    valid_until: Optional[datetime] = None
    gross_weight: Optional[float] = Field(default=None, ge=0)
    cbm: Optional[float] = Field(default=None, ge=0)

# ============================================================================
# BOOKING REQUEST
# ============================================================================

class BookingRequest(BaseModel):
    """Shipper inquiry against a public quotation."""
    model_config = ConfigDict(extra="ignore")

    booking_id: str = Field(default_factory=lambda: f"BKR-{uuid.uuid4().hex[:12].upper()}")
    quotation_id: str
    owner_id: str

    shipper_company: str
    shipper_name: str
    shipper_email: EmailStr
    shipper_phone: str

    ready_date: datetime
    commodity: str
    volume: str
    message: Optional[str] = None

    status: BookingStatus = BookingStatus.PENDING

    # Denormalized for listing
    route: str
    quote_short_id: str

    notification_status: NotificationStatus = NotificationStatus.PENDING
    notification_error: Optional[str] = None
    notification_attempts: int = 0

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class BookingSubmit(BaseModel):
    """Public booking form. Every shipper and cargo field except message is required."""
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    quote_short_id: str = Field(min_length=1)
    shipper_company: str = Field(min_length=1, max_length=200)
    shipper_name: str = Field(min_length=1, max_length=200)
    shipper_email: EmailStr
    shipper_phone: str = Field(min_length=1, max_length=50)
    ready_date: datetime
    commodity: str = Field(min_length=1, max_length=500)
    volume: str = Field(min_length=1, max_length=200)
    message: Optional[str] = Field(default=None, max_length=2000)


class BookingStatusUpdate(BaseModel):
    status: BookingStatus

# ============================================================================
# EMAIL
# ============================================================================

class MessageLog(BaseModel):
    """Outbound email record. status is sent or failed once delivery was attempted."""
    model_config = ConfigDict(extra="ignore")

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    postmark_message_id: Optional[str] = None
    recipient: EmailStr
    subject: str
    tag: Optional[str] = None
    reference_id: Optional[str] = None
    status: str = "queued"
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    provider_error_type: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
