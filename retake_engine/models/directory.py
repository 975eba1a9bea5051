"""
Reference tables owned by other parts of the academy system.

The retake engine only reads these: students and exams are resolved when a
retake is assigned, and names are joined in for listings and the history feed.
"""

from sqlalchemy import Column, DateTime, Enum as SQLEnum, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from retake_engine.database import Base
from retake_engine.models.enums import StatusColor
from retake_engine.models.timestamps import utcnow


class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String, nullable=False)
    phone_number = Column(String, nullable=True)
    school = Column(String, nullable=True)


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String, nullable=False)

    exams = relationship("Exam", back_populates="course")


class Exam(Base):
    __tablename__ = "exams"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False)
    name = Column(String, nullable=False)
    exam_number = Column(Integer, nullable=True)

    course = relationship("Course", back_populates="exams")


class ManagementStatus(Base):
    """
    One entry in the ordered management-status catalog.

    The catalog is maintained elsewhere; assignments keep the id and a cached
    copy of the name so that a later rename does not orphan the label.
    """
    __tablename__ = "management_statuses"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(30), nullable=False, unique=True)
    color = Column(SQLEnum(StatusColor), nullable=False, default=StatusColor.NEUTRAL)
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<ManagementStatus {self.display_order}:{self.name!r}>"
