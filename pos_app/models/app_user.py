"""AppUser model - cashiers and administrators."""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash
from pos_app.database import Base, BigIntId
import enum


class UserRole(str, enum.Enum):
    """User roles."""
    ADMIN = 'admin'
    CASHIER = 'cashier'


class AppUser(Base):
    """AppUser model - point-of-sale operators."""

    __tablename__ = 'app_user'

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    email = Column(String(150), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=True)
    full_name = Column(String(120), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.CASHIER.value)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def set_password(self, password):
        """Set password hash."""
        self.password_hash = generate_password_hash(password, method='scrypt')

    def check_password(self, password):
        """Check password against hash."""
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def __repr__(self):
        return f"<AppUser(id={self.id}, email='{self.email}', role='{self.role}')>"
