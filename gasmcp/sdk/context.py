"""Process-wide components, built once and passed to whoever needs them."""

import logging
from dataclasses import dataclass
from typing import Optional

from .auth import Authenticator
from .clasp import ClaspRunner
from .config import Settings, load_settings
from .crypto import EncryptionHelper
from .properties import PropertiesManager

logger = logging.getLogger(__name__)


@dataclass
class ServerContext:
    settings: Settings
    auth: Authenticator
    cipher: EncryptionHelper
    properties: PropertiesManager
    clasp: ClaspRunner


def build_context(settings: Optional[Settings] = None) -> ServerContext:
    """
    Construct the Authenticator, EncryptionHelper, PropertiesManager and
    ClaspRunner from one Settings object.

    Raises:
        CryptoError: If the configured encryption key is malformed
    """
    settings = settings or load_settings()
    auth = Authenticator(settings)
    cipher = EncryptionHelper(settings.encryption_key)
    logger.debug(f"Encryption key fingerprint: {cipher.fingerprint}")
    return ServerContext(
        settings=settings,
        auth=auth,
        cipher=cipher,
        properties=PropertiesManager(auth, cipher),
        clasp=ClaspRunner(binary=settings.clasp_binary, timeout=settings.clasp_timeout),
    )
