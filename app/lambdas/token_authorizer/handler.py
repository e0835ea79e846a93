# app/lambdas/token_authorizer/handler.py
import json
import logging
import os

import jwt

logger = logging.getLogger()
logger.setLevel(logging.INFO)

COGNITO_USER_POOL_ID = os.environ.get("COGNITO_USER_POOL_ID", "")
COGNITO_CLIENT_ID = os.environ.get("COGNITO_CLIENT_ID", "")
TOKEN_USE = "id"

_jwks_client = None


class Unauthorized(Exception):
    """Raised to make API Gateway answer 401 without any further detail."""

    def __init__(self):
        super().__init__("Unauthorized")


class InvalidTokenUseError(jwt.InvalidTokenError):
    pass


def _issuer():
    if not COGNITO_USER_POOL_ID:
        raise jwt.InvalidIssuerError("COGNITO_USER_POOL_ID not set")
    region = COGNITO_USER_POOL_ID.split("_")[0]
    return f"https://cognito-idp.{region}.amazonaws.com/{COGNITO_USER_POOL_ID}"


def _get_jwks_client():
    global _jwks_client
    if _jwks_client is None:
        _jwks_client = jwt.PyJWKClient(f"{_issuer()}/.well-known/jwks.json")
    return _jwks_client


def _strip_bearer(token):
    token = (token if isinstance(token, str) else "").strip()
    if token.lower().startswith("bearer "):
        return token[7:].strip()
    return token


def verify_token(token):
    """
    Verify a Cognito identity token and return its claims.

    Checks the RS256 signature against the user pool's published keys, the
    expiry, the issuer, the audience (app client id) and ``token_use``.
    Raises a ``jwt.PyJWTError`` subclass on any failure.
    """
    issuer = _issuer()
    if not COGNITO_CLIENT_ID:
        raise jwt.InvalidAudienceError("COGNITO_CLIENT_ID not set")

    signing_key = _get_jwks_client().get_signing_key_from_jwt(token)
    claims = jwt.decode(
        token,
        signing_key.key,
        algorithms=["RS256"],
        audience=COGNITO_CLIENT_ID,
        issuer=issuer,
        options={"require": ["exp", "iat", "aud", "iss", "token_use"]},
    )
    if claims.get("token_use") != TOKEN_USE:
        raise InvalidTokenUseError(f"Unexpected token_use: {claims.get('token_use')}")
    return claims


def generate_policy(principal_id, effect=None, resource=None):
    auth_response = {"principalId": principal_id}

    if effect and resource:
        auth_response["policyDocument"] = {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Action": "execute-api:Invoke",
                    "Effect": effect,
                    "Resource": resource,
                }
            ],
        }

    auth_response["context"] = {"foo": "bar"}
    return auth_response


def lambda_handler(event, context):
    """
    API Gateway TOKEN authorizer.

    A valid identity token yields an Allow policy for the invoked method ARN.
    Anything else raises ``Unauthorized`` rather than returning a Deny policy.
    """
    token = _strip_bearer(event.get("authorizationToken"))
    method_arn = event.get("methodArn")

    try:
        claims = verify_token(token)
    except jwt.PyJWTError as e:
        logger.warning("Token rejected for %s: %s", method_arn, e)
        raise Unauthorized() from e

    logger.info("Token claims: %s", json.dumps(claims))

    return generate_policy(claims.get("sub", "user"), "Allow", method_arn)
