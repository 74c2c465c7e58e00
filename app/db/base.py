# app/db/base.py
from app.db.base_class import Base

# load model modules so their tables land on Base.metadata
import app.models.user           # noqa: F401
import app.models.refresh_token  # noqa: F401

__all__ = ["Base"]
