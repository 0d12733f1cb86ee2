"""
PPMP Administration Service
Identity domain models.

Models:
    - Department: organisational unit that owns plans
    - User: local account with exactly one role and an optional department

Roles are a closed enumeration. A role string stored on a user that does not
match a member resolves to ``None`` and is granted nothing.
"""

from datetime import datetime, timezone
from enum import Enum

from ppmp.models import db


class Role(str, Enum):
    ADMIN = "ADMIN"
    PPMP_PREPARER = "PPMP_PREPARER"
    PPMP_APPROVER = "PPMP_APPROVER"
    FINANCE_HEAD = "FINANCE_HEAD"
    MAYOR = "MAYOR"
    VIEWER = "VIEWER"


APPROVER_ROLES = frozenset({Role.PPMP_APPROVER, Role.FINANCE_HEAD, Role.MAYOR})


class Department(db.Model):
    __tablename__ = "departments"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), nullable=False, unique=True)
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    users = db.relationship("User", back_populates="department", lazy="dynamic")

    def to_dict(self):
        return {"id": self.id, "code": self.code, "name": self.name}

    def __repr__(self):
        return f"<Department {self.code}>"


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(256))
    full_name = db.Column(db.String(200))
    role = db.Column(db.String(30), nullable=False, default=Role.VIEWER.value)
    department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    department = db.relationship("Department", back_populates="users")

    @property
    def role_enum(self) -> Role | None:
        """The user's role as a ``Role`` member, or None when unrecognised."""
        try:
            return Role(self.role)
        except ValueError:
            return None

    def summary(self):
        return {"id": self.id, "full_name": self.full_name, "email": self.email}

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "department_id": self.department_id,
            "department": self.department.to_dict() if self.department else None,
            "is_active": self.is_active,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email} ({self.role})>"
