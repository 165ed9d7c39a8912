"""
Application FastAPI unique, construite par la factory (marketplace.app_setup.factory).
"""
from marketplace.app_setup.factory import create_app

app = create_app()
