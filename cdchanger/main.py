"""Entry: start API server (the changer's poll thread starts with the app)."""
import logging
import os

import uvicorn

from cdchanger.config import API_HOST, API_PORT


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    uvicorn.run(
        "cdchanger.api.app:app",
        host=API_HOST,
        port=API_PORT,
        reload=os.getenv("CDCHANGER_RELOAD", "0").lower() in ("1", "true", "yes"),
    )


if __name__ == "__main__":
    main()
