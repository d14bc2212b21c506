"""
Todo backend with changelog-based incremental sync.

Every create, update and delete of a todo appends exactly one versioned
changelog entry; clients poll the changelist endpoint with the last
version they have seen to learn what changed.

The FastAPI application lives in todosync.main (import path: todosync.main:app).
"""
