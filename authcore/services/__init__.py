# authcore Services
from authcore.services.auth import AuthService, build_auth_service, extract_bearer_token
from authcore.services.blacklist import TokenBlacklist
from authcore.services.credentials import CredentialVerifier, hash_password, verify_password
from authcore.services.directory import SqlUserDirectory, UserDirectory
from authcore.services.tokens import SessionToken, TokenClaims, TokenCodec
from authcore.services.verification import VerificationToken, VerificationTokenStore

__all__ = [
    "AuthService",
    "CredentialVerifier",
    "SessionToken",
    "SqlUserDirectory",
    "TokenBlacklist",
    "TokenClaims",
    "TokenCodec",
    "UserDirectory",
    "VerificationToken",
    "VerificationTokenStore",
    "build_auth_service",
    "extract_bearer_token",
    "hash_password",
    "verify_password",
]
