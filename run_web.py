"""Entry point to run the Washdesk web application."""
from __future__ import annotations

import uvicorn

from washdesk.config import WEB_BIND, WEB_PORT
from washdesk.logging_utils import setup_logging


if __name__ == "__main__":
    setup_logging()
    uvicorn.run("washdesk.web.server:create_app", factory=True, host=WEB_BIND, port=WEB_PORT, reload=False)
