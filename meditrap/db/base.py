"""Declarative base shared by every MediTrap model."""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
