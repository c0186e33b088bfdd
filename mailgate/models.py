# mailgate/models.py
from sqlalchemy import Boolean, Column, Integer, String, DateTime, Text, Index

from mailgate.db import Base, utcnow


class Prompt(Base):
    __tablename__ = "prompts"

    id = Column(Integer, primary_key=True, index=True)
    # not unique: updates may introduce duplicate names
    name = Column(String(100), nullable=False, index=True)
    content = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_prompts_name_is_active", "name", "is_active"),
    )

    def __repr__(self):
        return f"<Prompt id={self.id} name={self.name!r} active={self.is_active}>"


class RequestLog(Base):
    __tablename__ = "request_logs"

    id = Column(Integer, primary_key=True, index=True)
    input = Column(Text, nullable=False)
    output = Column(Text, nullable=False, default="")
    success = Column(Boolean, nullable=False)
    error_message = Column(Text, nullable=True)
    client_info = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "input": self.input,
            "output": self.output,
            "success": self.success,
            "error_message": self.error_message,
            "client_info": self.client_info,
            "created_at": self.created_at,
        }
