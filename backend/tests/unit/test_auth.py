import pytest
from fastapi import HTTPException

from app.infra import jwt as jwt_helper
from app.infra.auth import JWTCredentialVerifier, get_current_user, verify_access_jwt


def test_verify_access_jwt_reads_claims():
    token = jwt_helper.encode_access({"sub": "u1", "name": "Anan", "roles": "admin,seller"})
    user = verify_access_jwt(token)
    assert user.id == "u1"
    assert user.display_name == "Anan"
    assert user.has_role("admin")


def test_verify_access_jwt_rejects_garbage():
    with pytest.raises(HTTPException) as excinfo:
        verify_access_jwt("not-a-token")
    assert excinfo.value.status_code == 401


@pytest.mark.asyncio
async def test_header_identity_that_looks_like_a_token_is_rejected():
    token = jwt_helper.encode_access({"sub": "u1"})
    with pytest.raises(HTTPException) as excinfo:
        await get_current_user(x_user_id=token, x_user_name=None, x_user_roles=None, credentials=None)
    assert excinfo.value.status_code == 401
    assert excinfo.value.detail == "invalid_user_id"


@pytest.mark.asyncio
async def test_credential_verifier_returns_subject_or_none():
    verifier = JWTCredentialVerifier()
    assert await verifier.verify_credential(jwt_helper.encode_access({"sub": "u9"})) == "u9"
    assert await verifier.verify_credential("aaa.bbb.ccc") is None
