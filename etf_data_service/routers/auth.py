"""Bearer-token guard for the scheduled-trigger and maintenance endpoints"""

import hmac
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from etf_data_service.container import ServiceContainer, get_container

logger = logging.getLogger(__name__)


async def verify_cron_secret(
    authorization: Optional[str] = Header(default=None),
    container: ServiceContainer = Depends(get_container),
) -> None:
    secret = container.settings.CRON_SECRET
    if not secret:
        logger.warning("CRON_SECRET is not set, trigger endpoints are unprotected")
        return
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    if not hmac.compare_digest(authorization[7:], secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid cron secret")
