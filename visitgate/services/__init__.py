"""Services package - all business logic lives here, never in routers.

Files:
  access.py           - building membership / role checks shared by every service
  visitor.py          - visitor deduplication by phone number within a building
  token.py            - verification token mint / verify / consume / revoke
  visit_generator.py  - one SCHEDULED visit (plus token) per new pre-approval
  pre_approval.py     - resident submissions, update and delete rules
  approval.py         - approve / reject gate with cascade onto the visit
  visit.py            - check-in / check-out lifecycle, scans and reads
  notifications.py    - fire-and-forget event delivery after commit

Rule: routers call services, services call repositories, repositories call the DB.
      No SQLAlchemy queries in routers. No FastAPI imports in services.
"""
