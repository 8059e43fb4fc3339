"""
Database tooling for the task-manager backend.

Runtime DB access lives in the API. This package is for repo-level DB operations:
- versioned SQL migrations and the runner that applies them
- create/drop of the database itself
- deterministic demo seed
"""
