"""
Persistence layer shared by the weekly report and the test harness.

SQLAlchemy ORM models plus engine/session helpers (asyncio extension).
"""
