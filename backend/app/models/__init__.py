"""SQLAlchemy ORM models.

Individual models should be imported explicitly:
    from app.models.session import ChatSession

All models are imported here so Alembic and init_db() can detect them
when building the schema.
"""

from app.models.department import Department
from app.models.document import DocumentChunk
from app.models.message import Message
from app.models.session import ChatSession
from app.models.setting import AppSetting

__all__ = [
    "ChatSession",
    "Message",
    "Department",
    "DocumentChunk",
    "AppSetting",
]
