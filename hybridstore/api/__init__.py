"""
HTTP API routers for the hybrid storage coordinator.
"""
