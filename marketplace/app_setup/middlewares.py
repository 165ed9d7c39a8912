"""
Middlewares transverses de l'application.
- register_basic_middlewares: CORS, TrustedHost et confiance en X-Forwarded-*.
- register_security_middleware: en-têtes de sécurité sur toutes les réponses, no-store sur l'API.
Pas de protection CSRF: l'API s'authentifie par Bearer et le webhook PayPal par signature.
"""
from typing import Dict

from fastapi import Request, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
try:
    from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware
except ImportError:
    ProxyHeadersMiddleware = None

from marketplace import config

# Posés seulement si la route ne les a pas déjà définis
DEFAULT_SECURITY_HEADERS: Dict[str, str] = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "no-referrer",
}
HSTS_VALUE = "max-age=63072000; includeSubDomains; preload"
API_PREFIX = "/api/"

def _allowed_hosts() -> list:
    if "*" in config.CORS_ORIGINS:
        return config.ALLOWED_HOSTS + ["*"]
    return config.ALLOWED_HOSTS

def register_basic_middlewares(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=_allowed_hosts())
    # Render / Nginx placent X-Forwarded-*: nécessaire pour l'IP du rate limiting
    if ProxyHeadersMiddleware:
        app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

def register_security_middleware(app: FastAPI) -> None:
    headers = dict(DEFAULT_SECURITY_HEADERS)
    if config.COOKIE_SECURE:
        headers["Strict-Transport-Security"] = HSTS_VALUE

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in headers.items():
            response.headers.setdefault(name, value)
        # Montants, liens d'approbation et statuts vendeur ne doivent pas être mis en cache
        if request.url.path.startswith(API_PREFIX):
            response.headers["Cache-Control"] = "no-store"
        return response
