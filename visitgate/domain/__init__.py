"""Domain package - all ORM models are imported here so Alembic autogenerate detects them.

Folder intent:
  states.py        - status enums, roles and the transition tables
  building.py      - building directory (read-only lookups)
  visitor.py       - visitors, unique per (phone, building)
  pre_approval.py  - resident-submitted pre-approvals
  visit.py         - visits generated from pre-approvals
  token.py         - single-use verification tokens, one per visit
  audit.py         - immutable audit trail (never updated or deleted)
  mixins.py        - shared timestamp / tombstone / building columns
"""

from visitgate.domain.audit import AuditTrail
from visitgate.domain.building import Building, BuildingMember
from visitgate.domain.pre_approval import PreApproval
from visitgate.domain.token import VisitToken
from visitgate.domain.visit import Visit
from visitgate.domain.visitor import Visitor

__all__ = [
    "AuditTrail",
    "Building",
    "BuildingMember",
    "PreApproval",
    "Visit",
    "VisitToken",
    "Visitor",
]
