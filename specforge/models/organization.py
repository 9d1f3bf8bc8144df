"""
SpecForge
Identity & tenancy models.

Models:
    - User: platform account (system role + email verification flag)
    - Organization: tenant boundary that owns projects
    - OrganizationMember: user ↔ organization with role and invite lifecycle
"""

from specforge.models import db, isoformat, new_uuid, utcnow


# ── Constants ────────────────────────────────────────────────────────────────

SYSTEM_ROLES = frozenset({"USER", "SUPER_ADMIN"})
ORG_ROLES = frozenset({"OWNER", "ADMIN", "DEVELOPER", "CLIENT"})
ORG_MANAGER_ROLES = frozenset({"OWNER", "ADMIN"})
INVITE_STATUSES = frozenset({"PENDING", "ACCEPTED", "REVOKED"})


# ── User ─────────────────────────────────────────────────────────────────────

class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    full_name = db.Column(db.String(200), nullable=True)
    system_role = db.Column(
        db.String(20), nullable=False, default="USER",
        comment="USER | SUPER_ADMIN",
    )
    is_email_verified = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "system_role": self.system_role,
            "is_email_verified": self.is_email_verified,
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.email}>"


# ── Organization ─────────────────────────────────────────────────────────────

class Organization(db.Model):
    __tablename__ = "organizations"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(120), nullable=False, unique=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    members = db.relationship(
        "OrganizationMember", backref="organization", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<Organization {self.slug}>"


# ── OrganizationMember ───────────────────────────────────────────────────────

class OrganizationMember(db.Model):
    """
    Organization-level membership.

    Only rows with invite_status == ACCEPTED grant project access; PENDING
    and REVOKED rows are kept for the invite history.
    """

    __tablename__ = "organization_members"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "user_id", name="uq_org_member_org_user"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    organization_id = db.Column(
        db.String(36), db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    role = db.Column(
        db.String(20), nullable=False, default="DEVELOPER",
        comment="OWNER | ADMIN | DEVELOPER | CLIENT",
    )
    invite_status = db.Column(
        db.String(20), nullable=False, default="PENDING",
        comment="PENDING | ACCEPTED | REVOKED",
    )
    invited_by_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    joined_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "user_id": self.user_id,
            "email": self.user.email if self.user else None,
            "role": self.role,
            "invite_status": self.invite_status,
            "invited_by_id": self.invited_by_id,
            "joined_at": isoformat(self.joined_at),
            "created_at": isoformat(self.created_at),
        }
