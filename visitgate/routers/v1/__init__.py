"""v1 router package - all /api/v1/* endpoints live here.

Files:
  pre_approvals.py  - resident submissions, approve / reject
  visits.py         - visit reads, token scan / reissue, check-in / check-out

Rule: Routers only handle HTTP (request parsing, response shaping).
      All business logic delegates to visitgate/services/.
"""
