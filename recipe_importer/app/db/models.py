from datetime import datetime
import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from recipe_importer.app.db.base import Base


class ImportStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_IMPORT_STATUSES = frozenset({ImportStatus.COMPLETED, ImportStatus.FAILED})


class User(Base):
    __tablename__ = "users"

    user_id = Column(String, primary_key=True, index=True)
    is_pro = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    recipes = relationship("Recipe", back_populates="user", cascade="all, delete-orphan")


class Recipe(Base):
    __tablename__ = "recipes"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    ingredients = Column(JSON, nullable=False, default=list)
    instructions = Column(JSON, nullable=False, default=list)
    prep_time = Column(Integer)
    cook_time = Column(Integer)
    servings = Column(Integer)
    notes = Column(Text)
    source_url = Column(String)
    cover_image_url = Column(String)
    import_image_path = Column(String)
    import_status = Column(
        Enum(ImportStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=ImportStatus.COMPLETED,
    )
    error_message = Column(Text)
    failed_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="recipes")

    __table_args__ = (
        Index("ix_recipes_user_created", "user_id", "created_at"),
        Index("ix_recipes_status_failed_at", "import_status", "failed_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.import_status in TERMINAL_IMPORT_STATUSES
