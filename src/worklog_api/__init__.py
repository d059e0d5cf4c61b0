"""
Work log backend package.

The FastAPI application lives in worklog_api.main (create_app / app).
"""

__version__ = "0.1.0"
