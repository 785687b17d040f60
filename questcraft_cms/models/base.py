# questcraft_cms/models/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Gemeinsame Declarative Base aller Modelle."""
