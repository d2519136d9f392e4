"""Declarative base for trailkeep tables."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass
