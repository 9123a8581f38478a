import hashlib
import hmac
import logging
import time
from typing import Any, Dict, List, Optional

import requests

from jamcraft.domain.entities import InboundMessage
from jamcraft.domain.errors import ChatError
from jamcraft.domain.ports import MessageHistory, Notifier


logger = logging.getLogger(__name__)

API_BASE = "https://slack.com/api"
SIGNATURE_MAX_AGE_SECONDS = 300
# Errors that mean the desired state already holds
_BENIGN_ERRORS = {'already_reacted'}


def compute_signature(signing_secret: str, timestamp: str, body: bytes) -> str:
    base = b"v0:" + timestamp.encode() + b":" + body
    digest = hmac.new(signing_secret.encode(), base, hashlib.sha256).hexdigest()
    return f"v0={digest}"


def verify_signature(signing_secret: str,
                     timestamp: Optional[str],
                     signature: Optional[str],
                     body: bytes,
                     now: Optional[float] = None) -> bool:
    """Check a Slack request signature and that it is at most five minutes old."""
    if not timestamp or not signature:
        return False
    try:
        ts = int(timestamp)
    except ValueError:
        return False
    current = time.time() if now is None else now
    if abs(current - ts) > SIGNATURE_MAX_AGE_SECONDS:
        return False
    expected = compute_signature(signing_secret, timestamp, body)
    return hmac.compare_digest(expected, signature)


def is_user_message(message: Dict[str, Any]) -> bool:
    return not message.get('bot_id') and not message.get('subtype')


class SlackClient(Notifier, MessageHistory):
    """Slack Web API client for reactions, replies, channel lookup and history."""

    def __init__(self,
                 bot_token: str,
                 session: Optional[requests.Session] = None,
                 timeout: float = 10.0,
                 page_delay: float = 0.2):
        """Initialize Slack client.

        Args:
            bot_token: Bot user OAuth token
            session: HTTP session, created when omitted
            timeout: Request timeout in seconds
            page_delay: Pause between history pages to stay under rate limits
        """
        self.bot_token = bot_token
        self._session = session or requests.Session()
        self.timeout = timeout
        self.page_delay = page_delay

    def _headers(self) -> Dict[str, str]:
        return {'Authorization': f'Bearer {self.bot_token}'}

    def _api(self, method: str, http_method: str = 'GET', **kwargs) -> Dict[str, Any]:
        url = f"{API_BASE}/{method}"
        try:
            response = self._session.request(
                http_method, url, headers=self._headers(), timeout=self.timeout, **kwargs
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ChatError(f"Slack {method} failed: {e}") from e

        if not data.get('ok'):
            error = data.get('error', 'unknown')
            if error in _BENIGN_ERRORS:
                return data
            detail = f"Slack API error in {method}: {error}"
            if error == 'missing_scope':
                detail += f" (needed: {data.get('needed')}, provided: {data.get('provided')})"
            raise ChatError(detail)
        return data

    def react(self, channel_id: str, thread_ref: str, emoji: str) -> None:
        self._api('reactions.add', 'POST', json={
            'channel': channel_id,
            'timestamp': thread_ref,
            'name': emoji,
        })

    def reply(self, channel_id: str, thread_ref: str, text: str) -> None:
        payload = {'channel': channel_id, 'text': text}
        if thread_ref:
            payload['thread_ts'] = thread_ref
        self._api('chat.postMessage', 'POST', json=payload)

    def resolve_channel_id(self, channel_name: str, max_pages: int = 5) -> Optional[str]:
        """Find a public channel by name. None when it is not among the first max_pages pages."""
        name = channel_name.lstrip('#')
        cursor = None

        for _ in range(max_pages):
            params = {'limit': 200, 'types': 'public_channel'}
            if cursor:
                params['cursor'] = cursor
            data = self._api('conversations.list', params=params)

            for channel in data.get('channels') or []:
                if channel.get('name') == name:
                    return channel.get('id')

            cursor = (data.get('response_metadata') or {}).get('next_cursor')
            if not cursor:
                break

        return None

    def fetch_history(self, channel_id: str) -> List[InboundMessage]:
        """Return all user messages of the channel, each thread followed by its replies."""
        messages: List[InboundMessage] = []
        cursor = None

        while True:
            params = {'channel': channel_id, 'limit': 200}
            if cursor:
                params['cursor'] = cursor
            data = self._api('conversations.history', params=params)

            for message in data.get('messages') or []:
                if not is_user_message(message):
                    continue
                if message.get('text'):
                    messages.append(InboundMessage(
                        channel_id=channel_id,
                        text=message['text'],
                        thread_ref=message.get('ts'),
                    ))
                if (message.get('reply_count') or 0) > 0 and message.get('ts'):
                    try:
                        messages.extend(self._fetch_thread_replies(channel_id, message['ts']))
                    except ChatError as e:
                        logger.warning(f"Skipping replies of thread {message['ts']}: {e}")

            cursor = (data.get('response_metadata') or {}).get('next_cursor')
            if not cursor:
                break
            time.sleep(self.page_delay)

        logger.info(f"Fetched {len(messages)} messages from channel {channel_id}")
        return messages

    def _fetch_thread_replies(self, channel_id: str, thread_ts: str) -> List[InboundMessage]:
        replies: List[InboundMessage] = []
        cursor = None

        while True:
            params = {'channel': channel_id, 'ts': thread_ts, 'limit': 200}
            if cursor:
                params['cursor'] = cursor
            data = self._api('conversations.replies', params=params)

            for message in data.get('messages') or []:
                # The parent message is repeated as the first entry
                if message.get('ts') == thread_ts or not is_user_message(message):
                    continue
                if message.get('text'):
                    replies.append(InboundMessage(
                        channel_id=channel_id,
                        text=message['text'],
                        thread_ref=message.get('ts'),
                    ))

            cursor = (data.get('response_metadata') or {}).get('next_cursor')
            if not cursor:
                break
            time.sleep(self.page_delay)

        return replies
