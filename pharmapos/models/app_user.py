"""AppUser model - staff members operating the POS."""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash
from pharmapos.database import Base, BigIntPK
import enum


class UserRole(str, enum.Enum):
    """Roles ordered from most to least privileged."""
    ADMIN = 'admin'
    MANAGER = 'manager'
    CASHIER = 'cashier'
    VIEWER = 'viewer'


ROLE_HIERARCHY = [UserRole.ADMIN, UserRole.MANAGER, UserRole.CASHIER, UserRole.VIEWER]


class AppUser(Base):
    """AppUser model - cashiers, managers and administrators."""

    __tablename__ = 'app_user'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=True)
    full_name = Column(String(200), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.CASHIER.value)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    register_sessions = relationship('CashRegisterSession', back_populates='user')

    def set_password(self, password):
        """Set password hash."""
        self.password_hash = generate_password_hash(password, method='scrypt')

    def check_password(self, password):
        """Check password against hash."""
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def has_role_at_least(self, role):
        """True when this user's role is `role` or more privileged."""
        try:
            mine = ROLE_HIERARCHY.index(UserRole(self.role))
        except ValueError:
            return False
        return mine <= ROLE_HIERARCHY.index(UserRole(role))

    @property
    def display_name(self):
        return self.full_name or self.email

    def __repr__(self):
        return f"<AppUser(id={self.id}, email='{self.email}', role='{self.role}')>"
