"""
Task Workflow Tracker

Multi-tenant task tracker. Administrators define applications, each with
one permitted user-group per workflow stage. Users create tasks and advance
them through a fixed five-state workflow, gated by group membership, with
every change recorded in an append-only audit trail.

Components:
- Group Membership Oracle: answers "is principal P a member of group G?"
- Application Registry: per-stage permissions and the running task counter
- Task Ledger: tasks, current state, owner, newest-first audit notes
- Workflow Engine: transition table, permission resolution, atomic commits
- Plan Registry: milestone groupings tasks may softly reference

Workflow:
    Open -> ToDo -> Doing -> Done -> Closed
    (Doing -> ToDo and Done -> Doing are rejections back one stage)

GUARANTEES:
- Task ids ({ACRONYM}_{N}) are issued at most once, never reused
- Two racing transitions on one task cannot both succeed from the same state
- A state change and the audit note documenting it are one atomic write
- Audit notes are never edited or removed
"""

__version__ = "1.0.0"

SERVICE_NAME = "Task Workflow Tracker"
