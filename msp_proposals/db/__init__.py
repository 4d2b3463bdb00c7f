"""Database package"""

from msp_proposals.db.session import AsyncSessionLocal, engine, get_db
from msp_proposals.models.base import Base

__all__ = ["Base", "AsyncSessionLocal", "engine", "get_db"]
