"""
Cognito token helper for manual API testing.

Usage:
    python -m patient_records.auth_cli USERNAME PASSWORD

Authenticates against the configured user pool app client with the
USER_PASSWORD_AUTH flow and prints the access token. When the app client
has a secret (``COGNITO_CLIENT_SECRET``), the required SECRET_HASH is
computed and sent along.
"""
import argparse
import base64
import hashlib
import hmac
import sys
from typing import Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .core.config import settings


def generate_secret_hash(username: str, client_id: str, client_secret: str) -> str:
    """Base64 HMAC-SHA256 of ``username + client_id`` keyed by the client secret."""
    digest = hmac.new(
        client_secret.encode("utf-8"),
        (username + client_id).encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def authenticate(
    username: str,
    password: str,
    client_id: str,
    client_secret: Optional[str] = None,
    client=None,
) -> Dict:
    """Run USER_PASSWORD_AUTH and return the ``AuthenticationResult`` mapping."""
    client = client or boto3.client("cognito-idp", region_name=settings.AWS_REGION)
    auth_params = {"USERNAME": username, "PASSWORD": password}
    if client_secret:
        auth_params["SECRET_HASH"] = generate_secret_hash(username, client_id, client_secret)

    resp = client.initiate_auth(
        AuthFlow="USER_PASSWORD_AUTH",
        ClientId=client_id,
        AuthParameters=auth_params,
    )
    result = resp.get("AuthenticationResult")
    if not result or not result.get("AccessToken"):
        # e.g. a NEW_PASSWORD_REQUIRED challenge
        raise RuntimeError(f"No access token in response (challenge: {resp.get('ChallengeName')})")
    return result


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Obtain a Cognito access token for the patient API.")
    parser.add_argument("username")
    parser.add_argument("password")
    parser.add_argument("--base-url", default="http://localhost:8000", help="API base URL used in the usage hint")
    args = parser.parse_args(argv)

    if not settings.COGNITO_CLIENT_ID:
        print("Error: COGNITO_CLIENT_ID is not set", file=sys.stderr)
        return 1

    print(f"Authenticating {args.username} with Cognito (region {settings.AWS_REGION})...")
    try:
        result = authenticate(
            args.username,
            args.password,
            settings.COGNITO_CLIENT_ID,
            settings.COGNITO_CLIENT_SECRET,
        )
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        print(f"Authentication failed: {code}", file=sys.stderr)
        if code == "NotAuthorizedException":
            print("Check the username and password, and that the user is confirmed and enabled.", file=sys.stderr)
        elif "SECRET_HASH" in str(exc):
            print("The app client has a secret: set COGNITO_CLIENT_SECRET.", file=sys.stderr)
        return 1
    except (BotoCoreError, RuntimeError) as exc:
        print(f"Authentication failed: {exc}", file=sys.stderr)
        return 1

    expires_in = result.get("ExpiresIn", 3600)
    print(f"Authentication successful. Token expires in {expires_in} seconds (~{expires_in // 60} minutes).\n")
    print(f"Access Token:\n{result['AccessToken']}\n")
    if result.get("RefreshToken"):
        print(f"Refresh Token:\n{result['RefreshToken']}\n")
    print("Use it in API requests:")
    print(f"  curl -X POST {args.base_url}/api/patients \\")
    print("    -H 'Authorization: Bearer <ACCESS_TOKEN>' \\")
    print("    -H 'Content-Type: application/json' \\")
    print('    -d \'{"name":"John","address":"123 St","conditions":[],"allergies":[]}\'')
    return 0


if __name__ == "__main__":
    sys.exit(main())
