"""
Test suite for the Task Workflow Tracker.

Tests for:
- Workflow engine (transitions, permissions, audit notes, concurrency)
- Application registry, plan registry, task ledger
- Membership directory, admin policy and settings
- HTTP router
"""
