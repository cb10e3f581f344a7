import json
import logging
import os
from dataclasses import dataclass
from typing import Tuple

from dotenv import load_dotenv

# Configure logging
logger = logging.getLogger(__name__)
load_dotenv()

SALESFORCE_MCP_SERVER_PORT = int(os.getenv("SALESFORCE_MCP_SERVER_PORT", "5000"))
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class SalesforceCredentials:
    """Credentials for opening a Salesforce session outside a request context."""

    access_token: str = ""
    instance_url: str = ""
    username: str = ""
    password: str = ""
    security_token: str = ""
    domain: str = "login"

    @classmethod
    def from_env(cls) -> "SalesforceCredentials":
        return cls(
            access_token=os.getenv("SALESFORCE_ACCESS_TOKEN", ""),
            instance_url=os.getenv("SALESFORCE_INSTANCE_URL", ""),
            username=os.getenv("SALESFORCE_USERNAME", ""),
            password=os.getenv("SALESFORCE_PASSWORD", ""),
            security_token=os.getenv("SALESFORCE_SECURITY_TOKEN", ""),
            domain=os.getenv("SALESFORCE_DOMAIN", "login"),
        )

    @property
    def has_session(self) -> bool:
        return bool(self.access_token and self.instance_url)

    @property
    def has_login(self) -> bool:
        return bool(self.username and self.password)


def parse_auth_data(auth_data: str) -> Tuple[str, str]:
    """Decode an auth data JSON blob.

    Returns:
        tuple: (access_token, instance_url), both empty when the blob is unusable
    """
    if not auth_data:
        return "", ""

    try:
        auth_json = json.loads(auth_data)
        return auth_json.get('access_token', ''), auth_json.get('instance_url', '')
    except (json.JSONDecodeError, TypeError, AttributeError) as e:
        logger.warning(f"Failed to parse auth data JSON: {e}")
        return "", ""
