"""
Backend package for the Conecta Alicante mobile app.

A FastAPI service with a SQLAlchemy data layer, bearer-token auth, a small
query cache and a WebSocket hub for realtime updates.
"""
