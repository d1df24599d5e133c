"""
Capabilities handed to interceptors.

Interceptors never import clients or the database directly; they call the
narrow interfaces below through an ExpansionServices bundle. Tests build the
bundle from fakes.
"""
import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from sqlalchemy.orm import sessionmaker

from backend.core.database.repository import SettingsRepository
from backend.core.expansions.clients import (
    HubSpotClient,
    LangChainTextGenerator,
    NotionClient,
    SlackClient,
    TrelloClient,
    WebhookPoster,
    ZoomClient,
)
from backend.core.security.secure_cache import SecureCache
from backend.core.security.vault import CredentialVault

logger = logging.getLogger(__name__)


class SettingsService(Protocol):
    async def get_id_by_email(self, email: str) -> Optional[str]: ...

    async def get_settings(self, user_id: str) -> Dict[str, Any]: ...

    async def update_settings(self, user_id: str, settings: Dict[str, Any]) -> None: ...


class EnvService(Protocol):
    def get(self, key: str) -> Optional[str]: ...


class MessagingClient(Protocol):
    async def list_channels(self) -> List[Dict[str, str]]: ...

    async def post_message(self, channel_id: str, text: str) -> None: ...


class DocStoreClient(Protocol):
    async def get_database(self, database_id: str) -> Dict[str, Any]: ...

    async def create_page(self, database_id: str, subject: str, content: str,
                          sender: Optional[str] = None, link: Optional[str] = None) -> None: ...


class ContactsClient(Protocol):
    async def find_contact(self, email: str) -> Optional[Dict[str, Any]]: ...

    async def create_contact(self, properties: Dict[str, Any]) -> Dict[str, Any]: ...


class MeetingsClient(Protocol):
    async def create_meeting(self, topic: str, duration: int,
                             start_time: Optional[str] = None) -> Dict[str, Any]: ...


class BoardsClient(Protocol):
    async def list_boards(self) -> List[Dict[str, Any]]: ...

    async def list_lists(self, board_id: str) -> List[Dict[str, Any]]: ...

    async def create_card(self, list_id: str, name: str, desc: Optional[str] = None) -> Dict[str, Any]: ...


class TextGenClient(Protocol):
    async def generate(self, system: str, prompt: str) -> str: ...


class HttpPoster(Protocol):
    async def post_json(self, url: str, payload: Dict[str, Any],
                        headers: Optional[Dict[str, str]] = None) -> int: ...


class StorageService(Protocol):
    def upload(self, key: str, body: Any, content_type: str = ...) -> str: ...

    def get(self, key: str) -> Optional[bytes]: ...

    def get_signed_url(self, key: str) -> str: ...


class RepositorySettingsService:
    """
    SettingsService backed by SettingsRepository.

    Opens a fresh session per call: background interceptors run after the
    request that scheduled them has closed its session. Queries run in a
    worker thread so they do not stall the event loop.
    """

    def __init__(self, session_factory: sessionmaker, vault: Optional[CredentialVault] = None):
        self.session_factory = session_factory
        self.vault = vault

    def _run(self, method: str, *args):
        with self.session_factory() as db:
            return getattr(SettingsRepository(db, self.vault), method)(*args)

    async def get_id_by_email(self, email: str) -> Optional[str]:
        return await asyncio.to_thread(self._run, "get_user_id_by_email", email)

    async def get_settings(self, user_id: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self._run, "read_settings", user_id)

    async def update_settings(self, user_id: str, settings: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._run, "write_settings", user_id, settings)


class EnvReader:
    """Environment access restricted to an allow-list."""

    SAFE_KEYS = ('GOOGLE_CLIENT_ID', 'NEXT_PUBLIC_APP_URL', 'RESEND_API_KEY')

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = environ if environ is not None else os.environ

    def get(self, key: str) -> Optional[str]:
        if key in self.SAFE_KEYS or key.startswith('EXPANSION_'):
            return self._environ.get(key)
        logger.warning(f"Expansion requested non-allow-listed env key {key}")
        return None


@dataclass
class ExpansionServices:
    """
    Capability bag passed to every interceptor.

    messaging, docstore, contacts, meetings and boards are factories because
    the credentials are per user.
    secure_cache is only set where a local secure cache exists.
    """
    user: SettingsService
    env: EnvService
    ai: Optional[TextGenClient] = None
    http: Optional[HttpPoster] = None
    storage: Optional[StorageService] = None
    messaging: Callable[[str], MessagingClient] = SlackClient
    docstore: Callable[[str], DocStoreClient] = NotionClient
    contacts: Callable[[str], ContactsClient] = HubSpotClient
    meetings: Callable[[str, str, str], MeetingsClient] = ZoomClient
    boards: Callable[[str, str], BoardsClient] = TrelloClient
    secure_cache: Optional[SecureCache] = None
    extras: Dict[str, Any] = field(default_factory=dict)


def build_default_services(
    session_factory: Optional[sessionmaker] = None,
    settings=None,
    secure_cache: Optional[SecureCache] = None,
) -> ExpansionServices:
    """
    Wire the production services from application settings.

    Args:
        session_factory: Defaults to the initialized database session factory
        settings: Defaults to get_settings()
        secure_cache: Defaults to the process-wide secure cache
    """
    from backend.core.config import get_settings
    from backend.core.database.connection import get_session_factory
    from backend.core.security.secure_cache import get_secure_cache
    from backend.core.storage import get_storage

    settings = settings or get_settings()

    return ExpansionServices(
        user=RepositorySettingsService(session_factory or get_session_factory()),
        env=EnvReader(),
        ai=LangChainTextGenerator(
            model=settings.openai_model,
            temperature=settings.openai_temperature,
            api_key=settings.openai_api_key,
        ),
        http=WebhookPoster(),
        storage=get_storage(),
        secure_cache=secure_cache or get_secure_cache(),
    )
