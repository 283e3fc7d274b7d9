"""Declarative base shared by every goodfirst table."""
from sqlalchemy.orm import declarative_base

Base = declarative_base()
