# bursar/api/deps/tenancy.py - Resolve the school a request acts on
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session
from typing import Optional, Dict, Any
from uuid import UUID

from bursar.core.db import get_db
from bursar.models.school import School


def require_school(
    db: Session = Depends(get_db),
    x_school_id: Optional[str] = Header(default=None, alias="X-School-ID"),
    x_user_id: Optional[str] = Header(default=None, alias="X-User-ID"),
) -> Dict[str, Any]:
    """
    Resolve the active school for the request and return a context dict.

    Authentication happens upstream; the caller's identity arrives in
    X-User-ID and is recorded as created_by on every document.
    """
    if not x_school_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-School-ID header is required",
        )
    try:
        school_id = UUID(x_school_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="X-School-ID is not a valid UUID")

    school = db.get(School, school_id)
    if school is None:
        raise HTTPException(status_code=404, detail="School not found")

    return {"school": school, "school_id": school.id, "user_id": x_user_id}
