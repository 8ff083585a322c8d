from __future__ import annotations
from sqlalchemy.orm import declarative_base, Mapped, mapped_column
from sqlalchemy import String, Boolean, DateTime, text
from typing import Optional

Base = declarative_base()

# --- Identity Models ---
class Profile(Base):
    __tablename__ = 'users'
    ROLE_ADMIN = 'admin'
    ROLE_CUSTOMER = 'customer'
    ALL_ROLES = (ROLE_ADMIN, ROLE_CUSTOMER)
    uid: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    # Federated identities carry no local password
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    auth_provider: Mapped[str] = mapped_column(String(32), nullable=False, default='password')
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=ROLE_CUSTOMER)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    first_queue_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_login: Mapped[Optional[str]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'))
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

    def set_password(self, raw: str):
        from werkzeug.security import generate_password_hash
        self.password_hash = generate_password_hash(raw)

    def verify_password(self, raw: str) -> bool:
        from werkzeug.security import check_password_hash
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, raw)

    @property
    def is_admin(self) -> bool:
        return self.role == self.ROLE_ADMIN and self.is_active is not False


class RevokedToken(Base):
    """JWT ids that were signed out (voluntarily or forced)."""
    __tablename__ = 'revoked_tokens'
    jti: Mapped[str] = mapped_column(String(64), primary_key=True)
    uid: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    reason: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    revoked_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'))
