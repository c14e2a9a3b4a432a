"""Pydantic schemas package.

Folder intent:
  common.py        - CamelModel base, shared field types (phone, visit date) + HealthResponse
  pre_approval.py  - pre-approval request DTOs, responses and the create composite
  visit.py         - visit, visitor and token responses, check-in/out requests
"""
