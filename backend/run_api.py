"""Local dev entrypoint for the crudforge API (after `pip install -e .`)."""

from __future__ import annotations

import logging
import os

if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=os.environ.get("CRUDFORGE_LOG_LEVEL", "INFO").upper())
    uvicorn.run(
        "crudforge.api.app:app",
        host="127.0.0.1",
        port=int(os.environ.get("CRUDFORGE_PORT", "8000")),
        reload=True,
        log_level=os.environ.get("CRUDFORGE_LOG_LEVEL", "info").lower(),
    )
