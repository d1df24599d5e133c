"""
Third-party clients used by the built-in expansions.

Each client is a thin wrapper over one HTTP API; expansions only see the
Protocols in services.py.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from backend.core.expansions.errors import ConfigurationError, ExpansionError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(15.0, connect=5.0)

SLACK_API = "https://slack.com/api"
NOTION_API = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"
NOTION_TEXT_LIMIT = 1800
HUBSPOT_API = "https://api.hubapi.com"
ZOOM_API = "https://api.zoom.us/v2"
ZOOM_TOKEN_URL = "https://zoom.us/oauth/token"
TRELLO_API = "https://api.trello.com/1"


class SlackClient:
    """Slack Web API (bot token)."""

    def __init__(self, token: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        if not token:
            raise ConfigurationError("Slack token not configured")
        self.token = token
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=SLACK_API,
            headers={"Authorization": f"Bearer {self.token}"},
            timeout=DEFAULT_TIMEOUT,
            transport=self._transport,
        )

    @staticmethod
    def _check(data: Dict[str, Any]) -> Dict[str, Any]:
        if not data.get("ok"):
            raise ExpansionError(f"Slack Error: {data.get('error', 'unknown_error')}")
        return data

    async def list_channels(self) -> List[Dict[str, str]]:
        async with self._client() as client:
            response = await client.get(
                "/conversations.list",
                params={"types": "public_channel,private_channel"},
            )
            data = self._check(response.json())
        return [{"id": c["id"], "name": c["name"]} for c in data.get("channels", [])]

    async def post_message(self, channel_id: str, text: str) -> None:
        async with self._client() as client:
            response = await client.post(
                "/chat.postMessage",
                json={"channel": channel_id, "text": text},
            )
            self._check(response.json())


class NotionClient:
    """Notion API (integration secret)."""

    def __init__(self, api_key: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        if not api_key:
            raise ConfigurationError("Notion API key not configured")
        self.api_key = api_key
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=NOTION_API,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Notion-Version": NOTION_VERSION,
            },
            timeout=DEFAULT_TIMEOUT,
            transport=self._transport,
        )

    async def get_database(self, database_id: str) -> Dict[str, Any]:
        async with self._client() as client:
            response = await client.get(f"/databases/{database_id}")
        if response.status_code != 200:
            raise ExpansionError("Failed to fetch database")
        data = response.json()
        title = data.get("title") or []
        return {
            "title": title[0].get("plain_text", "Untitled Database") if title else "Untitled Database",
            "url": data.get("url"),
        }

    async def create_page(
        self,
        database_id: str,
        subject: str,
        content: str,
        sender: Optional[str] = None,
        link: Optional[str] = None,
    ) -> None:
        """Create a database row with the email text as the first paragraph."""
        payload = {
            "parent": {"database_id": database_id},
            "properties": {
                "Name": {"title": [{"text": {"content": subject}}]},
                "From": {"rich_text": [{"text": {"content": sender or "Unknown"}}]},
                "Link": {"url": link},
            },
            "children": [
                {
                    "object": "block",
                    "type": "paragraph",
                    "paragraph": {
                        # Notion rejects text blocks above ~2000 chars
                        "rich_text": [{"text": {"content": content[:NOTION_TEXT_LIMIT]}}]
                    },
                }
            ],
        }
        async with self._client() as client:
            response = await client.post("/pages", json=payload)
        if response.status_code >= 400:
            logger.error(f"Notion API Error: {response.text[:500]}")
            raise ExpansionError(f"Notion Error: {response.reason_phrase}")


class WebhookPoster:
    """POST JSON to arbitrary URLs (webhooks, CRM endpoints)."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    async def post_json(self, url: str, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> int:
        async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT, transport=self._transport) as client:
            response = await client.post(url, json=payload, headers=headers)
        if response.status_code >= 400:
            logger.warning(f"POST {url} returned {response.status_code}")
        return response.status_code


class LangChainTextGenerator:
    """Plain-text generation through LangChain's ChatOpenAI."""

    def __init__(self, model: str = "gpt-4o-mini", temperature: float = 0.3, api_key: Optional[str] = None):
        self.model = model
        self.temperature = temperature
        self.api_key = api_key
        self._llm: Optional[ChatOpenAI] = None

    def _get_llm(self) -> ChatOpenAI:
        if self._llm is None:
            if not self.api_key:
                raise ConfigurationError("OPENAI_API_KEY not configured")
            self._llm = ChatOpenAI(model=self.model, temperature=self.temperature, api_key=self.api_key)
        return self._llm

    async def generate(self, system: str, prompt: str) -> str:
        response = await self._get_llm().ainvoke([
            SystemMessage(content=system),
            HumanMessage(content=prompt),
        ])
        return response.content if isinstance(response.content, str) else str(response.content)


class HubSpotClient:
    """HubSpot CRM contacts API (private app token)."""

    def __init__(self, token: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        if not token:
            raise ConfigurationError("HubSpot token not configured")
        self.token = token
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=HUBSPOT_API,
            headers={"Authorization": f"Bearer {self.token}"},
            timeout=DEFAULT_TIMEOUT,
            transport=self._transport,
        )

    async def find_contact(self, email: str) -> Optional[Dict[str, Any]]:
        """First contact whose email matches exactly, or None."""
        query = {
            "filterGroups": [{
                "filters": [{"propertyName": "email", "operator": "EQ", "value": email}]
            }]
        }
        try:
            async with self._client() as client:
                response = await client.post("/crm/v3/objects/contacts/search", json=query)
        except httpx.HTTPError as e:
            raise ExpansionError(f"HubSpot request failed: {e}") from e
        if response.status_code >= 400:
            raise ExpansionError("Failed to search contacts")
        data = response.json()
        results = data.get("results") or []
        return results[0] if data.get("total", 0) > 0 and results else None

    async def create_contact(self, properties: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.post("/crm/v3/objects/contacts", json={"properties": properties})
        except httpx.HTTPError as e:
            raise ExpansionError(f"HubSpot request failed: {e}") from e
        if response.status_code >= 400:
            raise ExpansionError(_error_message(response, "Failed to create contact"))
        return response.json()


class ZoomClient:
    """Zoom meetings through a server-to-server OAuth app."""

    def __init__(self, account_id: str, client_id: str, client_secret: str,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        if not (account_id and client_id and client_secret):
            raise ConfigurationError("Zoom credentials not configured")
        self.account_id = account_id
        self.client_id = client_id
        self.client_secret = client_secret
        self._transport = transport

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        response = await client.post(
            ZOOM_TOKEN_URL,
            data={"grant_type": "account_credentials", "account_id": self.account_id},
            auth=(self.client_id, self.client_secret),
        )
        if response.status_code >= 400:
            raise ExpansionError("Failed to get Zoom token")
        return response.json()["access_token"]

    async def create_meeting(self, topic: str, duration: int, start_time: Optional[str] = None) -> Dict[str, Any]:
        """Create a meeting for the app's user; type 1 (instant) like the web client."""
        payload = {"topic": topic, "type": 1, "duration": duration}
        if start_time:
            payload["start_time"] = start_time

        try:
            async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT, transport=self._transport) as client:
                token = await self._access_token(client)
                response = await client.post(
                    f"{ZOOM_API}/users/me/meetings",
                    json=payload,
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as e:
            raise ExpansionError(f"Zoom request failed: {e}") from e
        if response.status_code >= 400:
            raise ExpansionError(_error_message(response, "Failed to create meeting"))
        return response.json()


class TrelloClient:
    """Trello REST API (key + token as query parameters)."""

    def __init__(self, key: str, token: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        if not key or not token:
            raise ConfigurationError("Trello credentials not configured")
        self.key = key
        self.token = token
        self._transport = transport

    async def _call(self, method: str, path: str, failure: str, **params) -> Any:
        params.update({"key": self.key, "token": self.token})
        try:
            async with httpx.AsyncClient(base_url=TRELLO_API, timeout=DEFAULT_TIMEOUT,
                                         transport=self._transport) as client:
                response = await client.request(method, path, params=params)
        except httpx.HTTPError as e:
            raise ExpansionError(f"Trello request failed: {e}") from e
        if response.status_code >= 400:
            raise ExpansionError(failure)
        return response.json()

    async def list_boards(self) -> List[Dict[str, Any]]:
        return await self._call("GET", "/members/me/boards", "Failed to fetch boards", fields="name,id")

    async def list_lists(self, board_id: str) -> List[Dict[str, Any]]:
        return await self._call("GET", f"/boards/{board_id}/lists", "Failed to fetch lists", fields="name,id")

    async def create_card(self, list_id: str, name: str, desc: Optional[str] = None) -> Dict[str, Any]:
        params = {"idList": list_id, "name": name}
        if desc:
            params["desc"] = desc
        return await self._call("POST", "/cards", "Failed to create card", **params)


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        data = response.json()
    except ValueError:
        return default
    return (data.get("message") if isinstance(data, dict) else None) or default
