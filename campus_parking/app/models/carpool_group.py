"""
Carpool Group database models.

A carpool group is a set of users sharing one vehicle for commuting.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from campus_parking.app.db.session import Base


class CarpoolGroup(Base):
    """Carpool group. `created_at` is the ranking tie-break key."""
    __tablename__ = "carpool_groups"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    created_by_id = Column(Integer, nullable=False, index=True)
    capacity = Column(Integer, default=4, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    members = relationship(
        "CarpoolGroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="CarpoolGroupMember.user_id",
        lazy="selectin",
    )

    @property
    def member_ids(self):
        return [m.user_id for m in self.members]

    def __repr__(self):
        return f"<CarpoolGroup(id={self.id}, name='{self.name}', members={len(self.members)})>"


class CarpoolGroupMember(Base):
    """Membership of a user in a carpool group."""
    __tablename__ = "carpool_group_members"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    group_id = Column(Integer, ForeignKey("carpool_groups.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    joined_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    group = relationship("CarpoolGroup", back_populates="members")

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_carpool_member"),
    )
