"""
Institute Kernel

The access-control and workflow core of the institute platform:
- Identity and role store with an explicit blocked state
- Branch/department scope resolution, recomputed on every call
- A single access guard consulted by every data-access path
- Two-tier request approval (branch, then institute) with audit trail
- Notification audiences computed at read time, never materialized
"""

__version__ = "0.1.0"
