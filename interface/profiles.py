"""Username lookup for the player behind a frame action (Airstack GraphQL)."""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

USERNAME_QUERY = """
query ($fid: String!) {
  Socials(input: {filter: {dappName: {_eq: farcaster}, userId: {_eq: $fid}}, blockchain: ethereum}) {
    Social {
      profileName
    }
  }
}
"""


class ProfileClient:
    """Resolves a frame user id to a display name.

    Lookups never raise: any transport error, non-JSON reply or unexpected
    shape yields ``default_name``. The HTTP client lives between ``open()``
    and ``aclose()``; a lookup outside that window opens one on demand.
    """

    def __init__(self, api_url: str, api_key: str = "", timeout_s: float = 5.0,
                 default_name: str = "Player", enabled: bool = True,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_url = api_url
        self.default_name = default_name
        self.enabled = enabled and bool(api_url)
        self.timeout_s = timeout_s
        self.headers = {"Content-Type": "application/json"}
        if api_key:
            self.headers["Authorization"] = api_key
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_config(cls, cfg, transport: Optional[httpx.AsyncBaseTransport] = None) -> "ProfileClient":
        return cls(cfg.api_url, cfg.api_key, cfg.timeout_s, cfg.default_name, cfg.enabled, transport)

    async def open(self):
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_s, headers=self.headers,
                                             transport=self._transport)

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_username(self, fid) -> str:
        if fid is None or fid == "" or not self.enabled:
            return self.default_name
        try:
            await self.open()
            resp = await self._client.post(
                self.api_url,
                json={"query": USERNAME_QUERY, "variables": {"fid": str(fid)}},
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as e:
            logger.warning("Username lookup for fid %s failed: %s", fid, e)
            return self.default_name
        except ValueError:
            logger.warning("Username lookup for fid %s returned non-JSON body", fid)
            return self.default_name
        except Exception:
            logger.exception("Username lookup for fid %s raised unexpectedly", fid)
            return self.default_name
        return self._extract_name(data) or self.default_name

    def _extract_name(self, data) -> Optional[str]:
        try:
            socials = data["data"]["Socials"]["Social"]
        except (KeyError, TypeError):
            logger.info("Unexpected profile response structure: %r", data)
            return None
        if not isinstance(socials, list) or not socials or not isinstance(socials[0], dict):
            return None
        name = socials[0].get("profileName")
        return name if isinstance(name, str) and name else None
