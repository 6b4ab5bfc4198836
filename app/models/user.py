from datetime import datetime

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base
from app.models.common import IntegerIdMixin, TimestampMixin, utcnow

PROFILE_FIELDS = (
    "full_name",
    "default_street_address_line_1",
    "default_street_address_line_2",
    "default_city",
    "default_state_province_region",
    "default_postal_code",
    "default_country",
)


class User(Base, IntegerIdMixin, TimestampMixin):
    __tablename__ = "users"

    mobile_number: Mapped[str] = mapped_column(String(15), nullable=False, unique=True, index=True)
    # passlib hash of the outstanding one-time code
    otp: Mapped[str | None] = mapped_column(String(255), nullable=True)
    otp_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    full_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    default_street_address_line_1: Mapped[str | None] = mapped_column(String(255), nullable=True)
    default_street_address_line_2: Mapped[str | None] = mapped_column(String(255), nullable=True)
    default_city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    default_state_province_region: Mapped[str | None] = mapped_column(String(100), nullable=True)
    default_postal_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    default_country: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def set_code(self, code_hash: str, expires_at: datetime) -> None:
        self.otp = code_hash
        self.otp_expires_at = expires_at
        self.updated_at = utcnow()

    def clear_code(self) -> None:
        self.otp = None
        self.otp_expires_at = None
        self.updated_at = utcnow()

    @property
    def has_outstanding_code(self) -> bool:
        return bool(self.otp) and self.otp_expires_at is not None
