from abc import ABC, abstractmethod
from typing import Dict, List, Optional
import json
import logging
import os

from firebase_admin import messaging, credentials, initialize_app, _apps  # type: ignore
from firebase_admin import exceptions as firebase_exceptions  # type: ignore

from .config import settings
from .schemas import PlatformOptions, PushNotification, SendResult

logger = logging.getLogger(__name__)


# Error codes reported per token. The first two mean the token will never work again.
NOT_REGISTERED = "registration-token-not-registered"
INVALID_TOKEN = "invalid-registration-token"
SENDER_ID_MISMATCH = "sender-id-mismatch"
INVALID_ARGUMENT = "invalid-argument"
QUOTA_EXCEEDED = "quota-exceeded"
UNAVAILABLE = "unavailable"
INTERNAL = "internal"
UNKNOWN = "unknown"

PERMANENT_ERROR_CODES = frozenset({NOT_REGISTERED, INVALID_TOKEN})

# Tokens per send_each_for_multicast call
MULTICAST_BATCH_SIZE = 500


class PushGateway(ABC):
    """Multicast push delivery."""

    @abstractmethod
    def is_available(self) -> bool:
        ...

    @abstractmethod
    def send_multicast(
        self,
        tokens: List[str],
        notification: PushNotification,
        data: Dict[str, str],
        options: PlatformOptions,
    ) -> List[SendResult]:
        """Send one message to every token. Results are aligned with ``tokens`` by index."""


def _ensure_firebase_initialized() -> None:
    if _apps:
        return

    proj = settings.FCM_PROJECT_ID
    env_gac_json = os.getenv("GOOGLE_APPLICATION_CREDENTIALS_JSON")
    env_gac = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    env_sa_key = os.getenv("FIREBASE_SERVICE_ACCOUNT_KEY")
    cfg_val = settings.FCM_CREDENTIALS_JSON

    logger.info(f"[FCM] Initializing Firebase | project_id={proj}")
    logger.info(
        "[FCM] Creds sources | REMINDER_FCM_CREDENTIALS_JSON set="
        f"{bool(cfg_val)}, GOOGLE_APPLICATION_CREDENTIALS_JSON set={bool(env_gac_json)}, "
        f"GOOGLE_APPLICATION_CREDENTIALS set={bool(env_gac)}, FIREBASE_SERVICE_ACCOUNT_KEY set={bool(env_sa_key)}"
    )

    creds_json: Optional[str] = cfg_val or env_sa_key or env_gac_json or env_gac
    options = {"projectId": proj} if proj else None

    if not creds_json or creds_json.strip() == "":
        logger.warning("[FCM] No credentials provided - push notifications will be disabled")
        return

    try:
        if creds_json.strip().startswith("{"):
            cred = credentials.Certificate(json.loads(creds_json))
            initialize_app(cred, options=options)
            logger.info(f"[FCM] Firebase app initialized (inline JSON). apps={len(_apps)}")
        elif os.path.exists(creds_json):
            cred = credentials.Certificate(creds_json)
            initialize_app(cred, options=options)
            logger.info(f"[FCM] Firebase app initialized (file). apps={len(_apps)}")
        else:
            logger.error(f"[FCM] Credentials file not found: {creds_json}")
    except (ValueError, IOError) as e:
        logger.error(f"[FCM] Failed to initialize Firebase: {e!r}")


def classify_send_error(exc: Optional[Exception]) -> str:
    """Map an FCM SDK exception onto one of the per-token error codes above."""
    if exc is None:
        return UNKNOWN
    if isinstance(exc, messaging.UnregisteredError):
        return NOT_REGISTERED
    if isinstance(exc, messaging.SenderIdMismatchError):
        return SENDER_ID_MISMATCH
    if isinstance(exc, messaging.QuotaExceededError):
        return QUOTA_EXCEEDED
    if isinstance(exc, firebase_exceptions.InvalidArgumentError):
        # FCM reports malformed tokens as INVALID_ARGUMENT with this wording
        if "registration token" in str(exc).lower():
            return INVALID_TOKEN
        return INVALID_ARGUMENT
    if isinstance(exc, firebase_exceptions.UnavailableError):
        return UNAVAILABLE
    if isinstance(exc, firebase_exceptions.InternalError):
        return INTERNAL
    return UNKNOWN


def build_multicast_message(
    tokens: List[str],
    notification: PushNotification,
    data: Dict[str, str],
    options: PlatformOptions,
) -> messaging.MulticastMessage:
    return messaging.MulticastMessage(
        tokens=tokens,
        notification=messaging.Notification(title=notification.title, body=notification.body),
        data=data,
        android=messaging.AndroidConfig(
            priority=options.priority,
            notification=messaging.AndroidNotification(sound=options.sound),
        ),
        apns=messaging.APNSConfig(
            headers={
                "apns-push-type": "alert",
                "apns-priority": "10" if options.priority == "high" else "5",
            },
            payload=messaging.APNSPayload(
                aps=messaging.Aps(sound=options.sound, badge=options.badge),
            ),
        ),
    )


class FcmPushGateway(PushGateway):
    """Push gateway backed by Firebase Cloud Messaging."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def is_available(self) -> bool:
        _ensure_firebase_initialized()
        return bool(_apps)

    def send_multicast(
        self,
        tokens: List[str],
        notification: PushNotification,
        data: Dict[str, str],
        options: PlatformOptions,
    ) -> List[SendResult]:
        if not tokens:
            return []
        logger.info(f"[FCM] Sending '{notification.title}' to {len(tokens)} token(s)")
        results = []
        for start in range(0, len(tokens), MULTICAST_BATCH_SIZE):
            chunk = tokens[start:start + MULTICAST_BATCH_SIZE]
            message = build_multicast_message(chunk, notification, data, options)
            batch = messaging.send_each_for_multicast(message, dry_run=self.dry_run)
            for token, response in zip(chunk, batch.responses):
                if response.success:
                    results.append(SendResult(success=True, message_id=response.message_id))
                    continue
                code = classify_send_error(response.exception)
                logger.warning(f"[FCM] Token {token[:12]}... failed: {code} ({response.exception!r})")
                results.append(SendResult(success=False, error_code=code))
            logger.info(f"[FCM] Multicast batch done | success={batch.success_count} failure={batch.failure_count}")
        return results
