# backend/cadence/api/dependencies/identity.py
"""
Caller identity dependencies.

Authentication happens upstream; the gateway forwards the verified client id
in ``X-Client-Id``. This core only reads it.
"""

import re
from typing import Optional

from fastapi import Header, HTTPException, status

CLIENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_\-:.]{1,64}$")


def get_client_id(
    x_client_id: Optional[str] = Header(default=None, alias="X-Client-Id"),
) -> str:
    """Return the verified client id, or reject the request."""
    if not x_client_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Missing client identity", "code": "CLIENT_ID_REQUIRED"},
        )
    client_id = x_client_id.strip()
    if not CLIENT_ID_PATTERN.match(client_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Malformed client identity", "code": "CLIENT_ID_INVALID"},
        )
    return client_id


def get_browsing_session_id(
    x_browsing_session: Optional[str] = Header(default=None, alias="X-Browsing-Session"),
) -> Optional[str]:
    """Anonymous browsing session used to de-duplicate tracking clicks."""
    if not x_browsing_session:
        return None
    return x_browsing_session.strip()[:128] or None
