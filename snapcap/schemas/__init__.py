"""
SnapCap Backend: API Schemas
==============================

Pydantic models for every request body and response payload. Wire names
are camelCase (see `schemas.common.APIModel`); Python code uses snake_case.
"""
