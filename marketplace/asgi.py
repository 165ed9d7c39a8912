"""
ASGI entrypoint: expose `app` pour les process managers / déploiements
(ex: gunicorn -k uvicorn.workers.UvicornWorker marketplace.asgi:app).
"""

from marketplace.app import app
