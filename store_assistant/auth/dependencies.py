from dataclasses import dataclass
import logging
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from store_assistant.auth.jwks import verify_token
from store_assistant.db.deps import get_session
from store_assistant.db.repositories.stores import StoresRepository


bearer_scheme = HTTPBearer(auto_error=False)
logger = logging.getLogger("auth.deps")


@dataclass
class AuthContext:
    user_id: str
    store_id: str


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> AuthContext:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

    claims = verify_token(credentials.credentials)
    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token claims")
    store_id = claims.get("store_id") or claims.get("org_id")
    if not store_id:
        logger.warning(
            "Missing store in token",
            extra={"sub": user_id, "claims_keys": list(claims.keys())},
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing store context in token",
        )

    stores_repo = StoresRepository(session)
    if not stores_repo.get(store_id):
        logger.info("Creating store from token claims", extra={"store_id": store_id, "sub": user_id})
        stores_repo.create(name=claims.get("store_name") or f"Store {store_id}", store_id=store_id)

    logger.debug("AuthContext built", extra={"sub": user_id, "store_id": store_id})
    return AuthContext(user_id=user_id, store_id=str(store_id))
