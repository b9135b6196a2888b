"""
ASGI entry point: `uvicorn crm_platform.main:app`.
"""
from crm_platform.api.app import create_app

app = create_app()
