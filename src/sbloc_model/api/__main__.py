"""
Entry point for running the API as a module: python -m sbloc_model.api
"""
import logging
import os

from .app import app, HOST, PORT

if __name__ == '__main__':
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.run(host=HOST, port=PORT, debug=False)
