from __future__ import annotations

from datetime import timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi import HTTPException

from maintenance_core.auth import (
    ROLE_PERMISSIONS,
    check_permission,
    create_access_token,
    create_token_for_user,
    decode_token,
    get_password_hash,
    verify_password,
)


@pytest.mark.parametrize(
    ("role", "expected"),
    [
        (
            "admin",
            {
                "canViewAllWorkOrders": True,
                "canManageWorkOrders": True,
                "canReviewWorkOrders": True,
                "canDeleteWorkOrders": True,
                "canTrackTime": True,
            },
        ),
        (
            "manager",
            {
                "canViewAllWorkOrders": True,
                "canManageWorkOrders": True,
                "canReviewWorkOrders": True,
                "canDeleteWorkOrders": True,
                "canTrackTime": True,
            },
        ),
        (
            "tech",
            {
                "canViewAllWorkOrders": False,
                "canManageWorkOrders": False,
                "canReviewWorkOrders": False,
                "canDeleteWorkOrders": False,
                "canTrackTime": True,
            },
        ),
    ],
)
def test_role_permission_matrix(role: str, expected: dict[str, bool]) -> None:
    assert ROLE_PERMISSIONS[role] == expected


def test_unknown_role_or_permission_is_denied() -> None:
    assert check_permission(SimpleNamespace(role="guest"), "canTrackTime") is False
    assert check_permission(SimpleNamespace(role="admin"), "canLaunchRockets") is False


def test_token_round_trip_carries_subject_and_version() -> None:
    user = SimpleNamespace(id=uuid4(), token_version=3)

    payload = decode_token(create_token_for_user(user))

    assert payload["sub"] == str(user.id)
    assert payload["ver"] == 3
    assert payload["type"] == "access"


def test_expired_token_beyond_leeway_is_rejected() -> None:
    token = create_access_token({"sub": str(uuid4())}, expires_delta=timedelta(minutes=-5))

    with pytest.raises(HTTPException) as exc_info:
        decode_token(token)
    assert exc_info.value.status_code == 401


def test_password_hash_verifies_and_corrupt_hash_is_rejected() -> None:
    hashed = get_password_hash("tech123")

    assert verify_password("tech123", hashed) is True
    assert verify_password("wrong", hashed) is False
    assert verify_password("tech123", "not-a-bcrypt-hash") is False
