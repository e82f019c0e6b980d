"""Cognito token verification tests with locally generated RSA keys."""
import time

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from patient_records.core.errors import Unauthorized
from patient_records.core.security import AuthenticatedUser, CognitoTokenVerifier

POOL_ID = "us-east-1_TestPool"
CLIENT_ID = "test-client"
ISSUER = f"https://cognito-idp.us-east-1.amazonaws.com/{POOL_ID}"


class _SigningKey:
    def __init__(self, key):
        self.key = key


class StaticJwksClient:
    """Stands in for PyJWKClient: always returns the same public key."""

    def __init__(self, public_key):
        self.public_key = public_key

    def get_signing_key_from_jwt(self, token):
        return _SigningKey(self.public_key)


class TestCognitoTokenVerifier:
    def setup_method(self):
        self.private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        self.verifier = CognitoTokenVerifier(
            POOL_ID, CLIENT_ID, jwks_client=StaticJwksClient(self.private_key.public_key())
        )

    def _token(self, key=None, **overrides):
        claims = {
            "sub": "user-1",
            "username": "nurse",
            "iss": ISSUER,
            "client_id": CLIENT_ID,
            "token_use": "access",
            "exp": int(time.time()) + 3600,
        }
        claims.update(overrides)
        return jwt.encode(claims, key or self.private_key, algorithm="RS256", headers={"kid": "k1"})

    def test_issuer_derived_from_pool_region(self):
        assert self.verifier.issuer == ISSUER

    def test_valid_access_token(self):
        claims = self.verifier.verify(self._token())
        user = AuthenticatedUser.from_claims(claims)
        assert user.sub == "user-1"
        assert user.username == "nurse"
        assert user.email is None

    def test_expired_token_rejected(self):
        with pytest.raises(Unauthorized):
            self.verifier.verify(self._token(exp=int(time.time()) - 10))

    def test_wrong_signature_rejected(self):
        other = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        with pytest.raises(Unauthorized):
            self.verifier.verify(self._token(key=other))

    def test_wrong_issuer_rejected(self):
        with pytest.raises(Unauthorized):
            self.verifier.verify(self._token(iss="https://evil.example.com"))

    def test_id_token_rejected_for_access_use(self):
        with pytest.raises(Unauthorized):
            self.verifier.verify(self._token(token_use="id"))

    def test_other_client_rejected(self):
        with pytest.raises(Unauthorized):
            self.verifier.verify(self._token(client_id="another-client"))

    def test_garbage_token_rejected(self):
        with pytest.raises(Unauthorized):
            self.verifier.verify("not-a-jwt")


def test_missing_pool_configuration():
    with pytest.raises(ValueError):
        CognitoTokenVerifier("", CLIENT_ID, jwks_client=object())
