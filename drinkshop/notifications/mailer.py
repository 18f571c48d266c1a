"""
Client de notification e-mail sans état, construit une fois depuis la configuration.
- Transport primaire: réessais bornés avec délai croissant sur erreurs transitoires
  (connexion coupée, timeout, DNS, codes SMTP 4xx); arrêt immédiat sinon.
- Transport de secours (optionnel): une seule tentative quand le primaire abandonne.
- Chaque issue est journalisée avec la référence de commande; rien ne remonte à l'appelant HTTP.
"""
import logging
import smtplib
import socket
import ssl
import time
from email.message import EmailMessage
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict

from drinkshop import config

logger = logging.getLogger(__name__)


class NotificationFailure(Exception):
    """Échec d'envoi sur un transport donné (toujours capturé par le client)."""

    def __init__(self, message: str, *, transport: str = "", transient: bool = False):
        super().__init__(message)
        self.transport = transport
        self.transient = transient


class SmtpSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    host: str
    port: int = 465
    user: str = ""
    password: str = ""
    use_ssl: bool = True
    timeout: float = 10.0


class DeliveryResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str  # sent | failed_over | exhausted | skipped
    transport: Optional[str] = None
    attempts: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in ("sent", "failed_over")


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, NotificationFailure):
        return exc.transient
    if isinstance(exc, (smtplib.SMTPServerDisconnected, smtplib.SMTPConnectError)):
        return True
    if isinstance(exc, smtplib.SMTPResponseException):
        return 400 <= exc.smtp_code < 500
    return isinstance(exc, (TimeoutError, ConnectionError, socket.gaierror))


class SmtpTransport:
    """Un envoi = une connexion SMTP (SSL ou STARTTLS) avec son propre timeout."""

    def __init__(self, settings: SmtpSettings):
        self.settings = settings

    @property
    def name(self) -> str:
        return self.settings.name

    def send(self, message: EmailMessage) -> None:
        s = self.settings
        context = ssl.create_default_context()
        try:
            if s.use_ssl:
                server = smtplib.SMTP_SSL(s.host, s.port, timeout=s.timeout, context=context)
            else:
                server = smtplib.SMTP(s.host, s.port, timeout=s.timeout)
            with server:
                if not s.use_ssl:
                    server.starttls(context=context)
                if s.user:
                    server.login(s.user, s.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationFailure(
                str(e) or e.__class__.__name__, transport=s.name, transient=is_transient(e)
            ) from e


class NotificationClient:
    def __init__(
        self,
        primary,
        fallback=None,
        *,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.primary = primary
        self.fallback = fallback
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self._sleep = sleep

    def _send_primary(self, message: EmailMessage, order_ref: str):
        """Retourne (succès, tentatives, dernière erreur)."""
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                self.primary.send(message)
                logger.info(
                    "notifications.send sent order=%s transport=%s attempt=%s",
                    order_ref, self.primary.name, attempt,
                )
                return True, attempt, None
            except Exception as e:
                last_error = e
                if not is_transient(e):
                    logger.error(
                        "notifications.send non-transient failure order=%s transport=%s error=%s",
                        order_ref, self.primary.name, e,
                    )
                    return False, attempt, e
                if attempt < self.max_attempts:
                    delay = self.retry_delay * attempt
                    logger.warning(
                        "notifications.send retry order=%s transport=%s attempt=%s delay=%.2fs error=%s",
                        order_ref, self.primary.name, attempt, delay, e,
                    )
                    self._sleep(delay)
        return False, self.max_attempts, last_error

    def send(self, message: EmailMessage, *, order_ref: str = "") -> DeliveryResult:
        attempts = 0
        error: Optional[BaseException] = None
        if self.primary is not None:
            ok, attempts, error = self._send_primary(message, order_ref)
            if ok:
                return DeliveryResult(status="sent", transport=self.primary.name, attempts=attempts)

        if self.fallback is not None:
            attempts += 1
            try:
                self.fallback.send(message)
            except Exception as e:
                logger.error(
                    "notifications.send exhausted order=%s fallback=%s error=%s",
                    order_ref, self.fallback.name, e,
                )
                return DeliveryResult(status="exhausted", transport=self.fallback.name, attempts=attempts, error=str(e))
            logger.warning(
                "notifications.send failed-over order=%s transport=%s attempts=%s",
                order_ref, self.fallback.name, attempts,
            )
            return DeliveryResult(status="failed_over", transport=self.fallback.name, attempts=attempts)

        if self.primary is None:
            logger.warning("notifications.send skipped order=%s: aucun transport configuré", order_ref)
            return DeliveryResult(status="skipped")
        logger.error("notifications.send exhausted order=%s attempts=%s error=%s", order_ref, attempts, error)
        return DeliveryResult(
            status="exhausted", transport=self.primary.name, attempts=attempts,
            error=str(error) if error else None,
        )


def build_notification_client() -> NotificationClient:
    """Construit le client à partir de drinkshop.config (primaire + secours éventuel)."""
    primary = None
    if config.SMTP_HOST:
        primary = SmtpTransport(SmtpSettings(
            name="smtp-primary",
            host=config.SMTP_HOST,
            port=config.SMTP_PORT,
            user=config.SMTP_USER,
            password=config.SMTP_PASS,
            use_ssl=config.SMTP_USE_SSL,
            timeout=config.MAIL_TIMEOUT,
        ))
    fallback = None
    if config.SMTP_FALLBACK_HOST:
        fallback = SmtpTransport(SmtpSettings(
            name="smtp-fallback",
            host=config.SMTP_FALLBACK_HOST,
            port=config.SMTP_FALLBACK_PORT,
            user=config.SMTP_FALLBACK_USER,
            password=config.SMTP_FALLBACK_PASS,
            use_ssl=config.SMTP_FALLBACK_USE_SSL,
            timeout=config.MAIL_TIMEOUT,
        ))
    return NotificationClient(
        primary,
        fallback,
        max_attempts=config.MAIL_MAX_ATTEMPTS,
        retry_delay=config.MAIL_RETRY_DELAY,
    )


_client: Optional[NotificationClient] = None

def get_notification_client() -> NotificationClient:
    global _client
    if _client is None:
        _client = build_notification_client()
    return _client
