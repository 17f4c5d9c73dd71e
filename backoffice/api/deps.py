"""
API Dependencies
Common dependencies for API endpoints
"""

from typing import Generator

from fastapi import Path

from backoffice.core.database import SessionLocal
from backoffice.models import PartyType


def get_db() -> Generator:
    """
    Database dependency - creates a new database session for each request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_party(party: PartyType = Path(..., description="client or supplier")) -> PartyType:
    """Party side taken from the URL, e.g. /invoices/client"""
    return party
