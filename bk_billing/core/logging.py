from __future__ import annotations

import logging

from bk_billing.core.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> None:
    global _configured
    if _configured:
        return

    settings = get_settings()
    resolved = (level or settings.log_level).upper()
    logging.basicConfig(level=getattr(logging, resolved, logging.INFO), format=LOG_FORMAT)
    # fastapi-mail is chatty at INFO.
    logging.getLogger("fastapi_mail").setLevel(logging.WARNING)
    _configured = True
