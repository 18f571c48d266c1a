"""
ASGI entrypoint: expose `app` pour les process managers (uvicorn, gunicorn -k uvicorn.workers.UvicornWorker).
Toute la configuration FastAPI est centralisée dans drinkshop.app_setup.factory.
"""

from drinkshop.app import app

if __name__ == "__main__":
    import os
    import uvicorn
    uvicorn.run(
        "drinkshop.asgi:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )
