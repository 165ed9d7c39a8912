"""
Lancement local: python -m marketplace

Variables lues: HOST, PORT, UVICORN_RELOAD ("1"/"true"/"yes"), LOG_LEVEL.
En production l'ASGI est servi via marketplace.asgi:app.
"""
import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "marketplace.asgi:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", 8000)),
        reload=os.environ.get("UVICORN_RELOAD", "").lower() in ("1", "true", "yes"),
        log_level=os.environ.get("LOG_LEVEL", "info"),
        proxy_headers=True,
    )


if __name__ == "__main__":
    main()
