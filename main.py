from __future__ import annotations

import logging
import os

import uvicorn

# Logged at WARNING and above only; they emit a line per request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "py_clob_client")


def configure_logging() -> None:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, logging.getLogger().level))


def main() -> None:
    configure_logging()
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    logging.getLogger(__name__).info("Starting analyst backend on %s:%s", host, port)
    uvicorn.run(
        "analyst_backend.app:app",
        host=host,
        port=port,
        reload=os.getenv("UVICORN_RELOAD", "0").lower() in {"1", "true", "yes"},
        log_level=os.getenv("UVICORN_LOG_LEVEL", "info"),
    )


if __name__ == "__main__":
    main()
