"""
Operator Notifications

Sends notification text to every configured sink (Slack, Discord,
Telegram). Delivery failures are logged and never abort the run.
"""

from typing import List, Optional

import requests

from stakebot.utils.logger import get_logger

logger = get_logger(__name__)

TELEGRAM_API = "https://api.telegram.org"


class Notifier:
    """Webhook notifier"""

    def __init__(
        self,
        slack_webhook: Optional[str] = None,
        discord_webhook: Optional[str] = None,
        telegram_bot_token: Optional[str] = None,
        telegram_chat_id: Optional[str] = None,
        prefix: str = "",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None
    ):
        self.slack_webhook = slack_webhook or None
        self.discord_webhook = discord_webhook or None
        self.telegram_bot_token = telegram_bot_token or None
        self.telegram_chat_id = telegram_chat_id or None
        self.prefix = prefix
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: dict, dry_run: bool = False) -> "Notifier":
        """Build notifier from config['notifications']; dry-run messages are prefixed"""
        notifications_config = config.get('notifications') or {}
        return cls(
            slack_webhook=notifications_config.get('slack_webhook'),
            discord_webhook=notifications_config.get('discord_webhook'),
            telegram_bot_token=notifications_config.get('telegram_bot_token'),
            telegram_chat_id=notifications_config.get('telegram_chat_id'),
            prefix="DRYRUN" if dry_run else "",
        )

    def is_empty(self) -> bool:
        """True if no sink is configured"""
        telegram = self.telegram_bot_token and self.telegram_chat_id
        return not (self.slack_webhook or self.discord_webhook or telegram)

    def _post(self, sink: str, url: str, body: dict) -> bool:
        try:
            response = self.session.post(url, json=body, timeout=self.timeout)
            response.raise_for_status()
            return True
        except requests.RequestException as e:
            logger.warning(f"Failed to send {sink} notification: {e}")
            return False

    def send(self, text: str) -> List[str]:
        """
        Send text to every configured sink

        Returns:
            Names of the sinks that accepted the message
        """
        message = f"{self.prefix} {text}" if self.prefix else text
        delivered = []

        if self.slack_webhook and self._post('slack', self.slack_webhook, {'text': message}):
            delivered.append('slack')

        if self.discord_webhook and self._post('discord', self.discord_webhook, {'content': message}):
            delivered.append('discord')

        if self.telegram_bot_token and self.telegram_chat_id:
            url = f"{TELEGRAM_API}/bot{self.telegram_bot_token}/sendMessage"
            if self._post('telegram', url, {'chat_id': self.telegram_chat_id, 'text': message}):
                delivered.append('telegram')

        return delivered
