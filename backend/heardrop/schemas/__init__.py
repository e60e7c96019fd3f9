"""
HEARDROP Backend — Pydantic Request/Response Schemas
======================================================

Schemas are separate from SQLAlchemy models because the API contract
changes independently of the table layout, and because the public views
must never leak internal fields (shop contact details, password hashes,
pro-only drop codes).
"""
