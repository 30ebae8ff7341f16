"""
Shopify embedded-app authentication.

The admin UI sends the App Bridge session token as `Authorization: Bearer <jwt>`. It is signed
with the app secret (HS256) and addressed to the app's API key. The shop comes from the `dest`
claim; its offline session supplies the Admin API access token.
"""
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.workers.inventory_sync_worker import get_offline_session

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class ShopContext:
    shop: str
    access_token: str


def shop_from_session_token(token: str) -> str:
    """Verify a session token and return the shop domain. Raises JWTError on any problem."""
    payload = jwt.decode(
        token,
        settings.SHOPIFY_API_SECRET,
        algorithms=[ALGORITHM],
        audience=settings.SHOPIFY_API_KEY or None,
        options={"verify_aud": bool(settings.SHOPIFY_API_KEY)},
    )
    dest = payload.get("dest") or ""
    shop = urlparse(dest).netloc if "://" in dest else dest
    if not shop:
        raise JWTError("Session token has no dest claim")
    return shop.lower()


async def get_current_shop(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> ShopContext:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate Shopify session",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None or not credentials.credentials:
        raise credentials_exception
    if not settings.SHOPIFY_API_SECRET:
        logger.error("SHOPIFY_API_SECRET is not set; cannot verify session tokens")
        raise HTTPException(status_code=500, detail="Authentication is not configured")

    try:
        shop = shop_from_session_token(credentials.credentials)
    except JWTError as e:
        logger.warning("Invalid Shopify session token: %s", e)
        raise credentials_exception

    session = get_offline_session(db, shop)
    if session is None or not session.access_token:
        logger.warning("No offline session for %s", shop)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Shop is not installed")
    return ShopContext(shop=shop, access_token=session.access_token)
