"""
Entrypoint for running the API in development: ``python -m api``.
In production run create_app() under a WSGI server (gunicorn/uwsgi).
"""
import os
from . import create_app

# Respect APP_ENV for configuration selection (handled in get_config())
app = create_app()

if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = app.config["PORT"]
    app.run(host=host, port=port, debug=app.config.get("DEBUG", False), threaded=True)
