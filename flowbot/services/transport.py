"""Outbound WhatsApp delivery through a ChatFlow-style HTTP gateway."""

import mimetypes
import os
from typing import Optional, Protocol
from urllib.parse import quote, urlparse

import httpx

from flowbot.logging_config import get_logger
from flowbot.services.alert_service import alert_critical

logger = get_logger("transport")

WHATSAPP_SUFFIX = "@s.whatsapp.net"

MEDIA_ENDPOINTS = {
    "image": ("send-image", "imageurl"),
    "video": ("send-video", "videourl"),
    "audio": ("send-audio", "audiourl"),
    "document": ("send-doc", "docurl"),
}


def normalize_number(value: Optional[str]) -> str:
    """Strip whitespace, a leading '+' and any JID suffix: '+7701...@s.whatsapp.net' -> '7701...'."""
    number = (value or "").strip()
    if "@" in number:
        number = number.split("@", 1)[0]
    return number.lstrip("+")


def to_jid(number: str) -> str:
    return f"{normalize_number(number)}{WHATSAPP_SUFFIX}"


def media_kind(media: str) -> str:
    mime, _ = mimetypes.guess_type(urlparse(media).path)
    if mime:
        major = mime.split("/", 1)[0]
        if major in ("image", "video", "audio"):
            return major
    return "document"


class Transport(Protocol):
    async def send_message(self, number: str, text: Optional[str], media: Optional[str] = None) -> bool: ...

    async def close(self) -> None: ...


class ChatflowTransport:
    def __init__(
        self,
        token: Optional[str],
        instance_id: Optional[str],
        *,
        api_url: str,
        media_base_url: str,
        public_base_url: str = "http://localhost:3008",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.token = token
        self.instance_id = instance_id
        self.api_url = api_url
        self.media_base_url = media_base_url.rstrip("/")
        self.public_base_url = public_base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def resolve_media_url(self, media: str) -> str:
        """Local files are served from the app's /assets mount."""
        if urlparse(media).scheme in ("http", "https"):
            return media
        return f"{self.public_base_url}/assets/{quote(os.path.basename(media))}"

    async def send_message(self, number: str, text: Optional[str], media: Optional[str] = None) -> bool:
        jid = to_jid(number)
        if not self.token or not self.instance_id:
            logger.error("ChatFlow token or instance id is missing (CHATFLOW_TOKEN / CHATFLOW_INSTANCE_ID)")
            alert_critical("WhatsApp send failed", {"jid": jid, "error": "missing_chatflow_credentials"})
            return False
        if not text and not media:
            logger.warning(f"send_message: nothing to send to {jid}")
            return False

        params = {"token": self.token, "instance_id": self.instance_id, "jid": jid}
        if media:
            endpoint, url_param = MEDIA_ENDPOINTS[media_kind(media)]
            url = f"{self.media_base_url}/{endpoint}"
            params[url_param] = self.resolve_media_url(media)
            # the gateway rejects captionless image/doc/video requests
            params["caption"] = text.strip() if text and text.strip() else " "
        else:
            url = self.api_url
            params["msg"] = text

        try:
            response = await self._client.get(url, params=params)
        except httpx.HTTPError as e:
            logger.error(f"Error sending WhatsApp message: {e}")
            alert_critical("WhatsApp send failed", {"jid": jid, "error": str(e)})
            return False

        logger.info(f"ChatFlow response: status={response.status_code}, jid={jid}, body={response.text[:200]}")
        return response.status_code == 200

    async def close(self) -> None:
        await self._client.aclose()
