"""UTM Tracker — Secret Resolution.

Secrets come from the environment first and fall back to AWS Secrets
Manager. They are resolved once at startup into an immutable RuntimeSecrets
object; nothing re-reads them for the lifetime of the process.
"""

import json
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel

from utm_tracker.config import Settings
from utm_tracker.core.exceptions import SecretResolutionError
from utm_tracker.core.logging import get_logger

logger = get_logger("core.secrets")


class RuntimeSecrets(BaseModel):
    """Secrets resolved for this process."""

    model_config = {"frozen": True}

    gallabox_token: str
    google_credentials: Optional[Dict[str, Any]] = None


class SecretResolver:
    """Reads secret strings from AWS Secrets Manager, memoizing each one."""

    def __init__(self, region_name: str, client: Any = None, timeout: int = 15):
        self.region_name = region_name
        self.timeout = timeout
        self._client = client
        self._cache: Dict[str, str] = {}

    def _get_client(self) -> Any:
        if self._client is None:
            config = Config(connect_timeout=self.timeout, read_timeout=self.timeout)
            session = boto3.session.Session(region_name=self.region_name)
            self._client = session.client(
                service_name="secretsmanager", region_name=self.region_name, config=config
            )
        return self._client

    def get_secret(self, secret_id: str) -> str:
        if secret_id in self._cache:
            return self._cache[secret_id]
        try:
            resp = self._get_client().get_secret_value(
                SecretId=secret_id, VersionStage="AWSCURRENT"
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"❌ Failed to retrieve secret {secret_id}: {e}")
            raise SecretResolutionError(secret_id, str(e)) from e
        secret = resp["SecretString"]
        self._cache[secret_id] = secret
        logger.info(f"Successfully retrieved secret: {secret_id}")
        return secret

    def resolve(self, env_value: Optional[str], secret_id: str) -> str:
        """Environment value if set, otherwise the stored secret."""
        if env_value:
            return env_value
        return self.get_secret(secret_id)


def _load_google_credentials(
    settings: Settings, resolver: SecretResolver
) -> Optional[Dict[str, Any]]:
    try:
        raw = resolver.resolve(
            settings.google_credentials, settings.google_credentials_secret_name
        )
    except SecretResolutionError as e:
        logger.warning(f"⚠️ Google credentials unavailable, Sheets export disabled: {e}")
        return None
    try:
        credentials = json.loads(raw)
    except ValueError as e:
        logger.error(f"❌ Google credentials are not valid JSON: {e}")
        return None
    if not isinstance(credentials, dict):
        logger.error("❌ Google credentials must be a JSON object")
        return None
    return credentials


def load_runtime_secrets(
    settings: Settings, resolver: Optional[SecretResolver] = None
) -> RuntimeSecrets:
    """Resolve all secrets. A missing webhook token is fatal; Sheets creds are not."""
    resolver = resolver or SecretResolver(region_name=settings.aws_region)
    gallabox_token = resolver.resolve(
        settings.gallabox_token, settings.gallabox_token_secret_name
    )
    return RuntimeSecrets(
        gallabox_token=gallabox_token,
        google_credentials=_load_google_credentials(settings, resolver),
    )
