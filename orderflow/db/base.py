"""Declarative base for orderflow database models."""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
