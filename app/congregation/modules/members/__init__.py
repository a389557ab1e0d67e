"""
Members module.

- Publisher records (contact details, role, pioneer status, service group)
- Service groups and privileges
- Duties used to decide who can take a meeting assignment
"""
