"""
studyprep/config.py - Application configuration and Firebase initialization.

This module defines a Pydantic BaseSettings class to load configuration from environment,
and lazily initializes the Firebase Admin SDK (Auth, Firestore DB, Storage) from the provided
credentials. Other modules import `settings` and call `get_firebase_app()`, `get_db()` or
`get_bucket()` when they actually need Firebase, so the API can run against the in-memory
user store without any credentials.
"""
import os
from functools import lru_cache
from typing import Literal, Optional

import firebase_admin
from firebase_admin import credentials, firestore, storage
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    firebase_cred_file: str = Field('firebase_service_account.json', validation_alias='FIREBASE_CRED_FILE')
    firebase_project_id: Optional[str] = Field(None, validation_alias='FIREBASE_PROJECT_ID')
    firebase_storage_bucket: Optional[str] = Field(None, validation_alias='FIREBASE_STORAGE_BUCKET')

    # Firebase credentials from environment variables (for Cloud Run)
    firebase_private_key_id: Optional[str] = Field(None, validation_alias='FIREBASE_PRIVATE_KEY_ID')
    firebase_private_key: Optional[str] = Field(None, validation_alias='FIREBASE_PRIVATE_KEY')
    firebase_client_email: Optional[str] = Field(None, validation_alias='FIREBASE_CLIENT_EMAIL')
    firebase_client_id: Optional[str] = Field(None, validation_alias='FIREBASE_CLIENT_ID')
    firebase_auth_uri: Optional[str] = Field(None, validation_alias='FIREBASE_AUTH_URI')
    firebase_token_uri: Optional[str] = Field(None, validation_alias='FIREBASE_TOKEN_URI')
    firebase_auth_provider_x509_cert_url: Optional[str] = Field(None, validation_alias='FIREBASE_AUTH_PROVIDER_X509_CERT_URL')
    firebase_client_x509_cert_url: Optional[str] = Field(None, validation_alias='FIREBASE_CLIENT_X509_CERT_URL')

    # Identity verification
    check_revoked: bool = Field(True, validation_alias='CHECK_REVOKED')
    allow_mock_tokens: bool = Field(False, validation_alias='ALLOW_MOCK_TOKENS')  # development only
    sync_identity_provider: bool = Field(True, validation_alias='SYNC_IDENTITY_PROVIDER')  # role claims + token revocation

    # Persistence / storage
    user_store_backend: Literal["firestore", "memory"] = Field("firestore", validation_alias='USER_STORE_BACKEND')
    users_collection: str = Field("users", validation_alias='USERS_COLLECTION')
    storage_backend: Literal["firebase", "local"] = Field("firebase", validation_alias='STORAGE_BACKEND')
    uploads_dir: str = Field(os.path.join("public", "uploads"), validation_alias='UPLOADS_DIR')
    uploads_base_url: str = Field("/uploads", validation_alias='UPLOADS_BASE_URL')

    # HTTP
    api_prefix: str = Field("/api", validation_alias='API_PREFIX')
    allowed_origins: str = Field('http://localhost:3000', validation_alias='ALLOWED_ORIGINS')  # Comma-separated list or '*' for all
    default_page_size: int = Field(6, validation_alias='DEFAULT_PAGE_SIZE')

    debug: bool = Field(False, validation_alias='DEBUG')
    log_level: str = Field("INFO", validation_alias='LOG_LEVEL')


# Load settings from environment (.env file, etc.)
settings = Settings()


def _build_credential():
    """Service account from split env vars (Cloud Run), a key file (local), or ADC."""
    if all([
        settings.firebase_private_key_id,
        settings.firebase_private_key,
        settings.firebase_client_email,
        settings.firebase_client_id,
        settings.firebase_auth_uri,
        settings.firebase_token_uri,
        settings.firebase_auth_provider_x509_cert_url,
        settings.firebase_client_x509_cert_url,
    ]):
        cred_dict = {
            "type": "service_account",
            "project_id": settings.firebase_project_id,
            "private_key_id": settings.firebase_private_key_id,
            # Cloud Run secrets keep the newlines escaped
            "private_key": settings.firebase_private_key.replace("\\n", "\n"),
            "client_email": settings.firebase_client_email,
            "client_id": settings.firebase_client_id,
            "auth_uri": settings.firebase_auth_uri,
            "token_uri": settings.firebase_token_uri,
            "auth_provider_x509_cert_url": settings.firebase_auth_provider_x509_cert_url,
            "client_x509_cert_url": settings.firebase_client_x509_cert_url,
        }
        return credentials.Certificate(cred_dict)
    if os.path.exists(settings.firebase_cred_file):
        return credentials.Certificate(settings.firebase_cred_file)
    return credentials.ApplicationDefault()


def get_firebase_app() -> firebase_admin.App:
    """Create or return the shared Firebase app instance."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    options = {}
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id
    if settings.firebase_storage_bucket:
        options["storageBucket"] = settings.firebase_storage_bucket
    return firebase_admin.initialize_app(_build_credential(), options or None)


@lru_cache(maxsize=1)
def get_db():
    """Firestore database client."""
    return firestore.client(app=get_firebase_app())


@lru_cache(maxsize=1)
def get_bucket():
    """Default storage bucket."""
    return storage.bucket(app=get_firebase_app())
