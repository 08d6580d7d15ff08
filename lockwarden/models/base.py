"""Declarative base for all Lockwarden tables."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass
