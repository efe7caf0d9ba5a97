"""auth/ -- Authentication and session-lifecycle package.

Layer rule: auth/ imports stdlib, third-party libraries, and core/ (config).
It does NOT import from api/, except auth/dependencies.py, which is part of
FastAPI's dependency injection and imports fastapi only.
api/ imports from auth/, not the other way around.
"""
