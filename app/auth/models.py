import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import relationship

from app.core.clock import campus_now
from app.db.session import Base


class User(Base):
    """Login identity. Registration and credentials are handled outside this service."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, unique=True)
    phone_number = Column(String(15), nullable=True, unique=True)
    # STUDENT, PARENT, DEPUTY_WARDEN, PRINCIPAL, WATCHMAN
    role = Column(String(50), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="ACTIVE")
    created_at = Column(DateTime, default=campus_now, nullable=False)

    staff_profile = relationship(
        "StaffProfile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    student_profile = relationship(
        "StudentProfile",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
        foreign_keys="StudentProfile.user_id",
    )


class StaffProfile(Base):
    """Profile for deputy wardens, principals and watchmen."""

    __tablename__ = "staff_profiles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    staff_name = Column(String(100), nullable=False)
    employee_code = Column(String(20), nullable=True, unique=True)
    designation = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=campus_now, nullable=False)

    user = relationship("User", back_populates="staff_profile")


class StudentProfile(Base):
    """
    Hostel resident. college_id is the external identifier printed on the ID card and
    used by the watchman for manual entries. guardian_user_id links the parent account.
    """

    __tablename__ = "student_profiles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    college_id = Column(String(20), nullable=False, unique=True)
    student_name = Column(String(100), nullable=False)
    department = Column(String(100), nullable=True)
    hostel_block = Column(String(50), nullable=True)
    room_number = Column(String(10), nullable=True)
    guardian_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=campus_now, nullable=False)

    user = relationship("User", back_populates="student_profile", foreign_keys=[user_id])
    guardian = relationship("User", foreign_keys=[guardian_user_id])
