"""
Infrastructure clients: PostgreSQL, Redis and MinIO.
Each subdirectory wraps one service; routers/health.py probes them.
"""
