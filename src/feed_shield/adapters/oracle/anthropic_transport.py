"""Direct Anthropic Messages API transport."""

from typing import Any

import httpx

from feed_shield.adapters.oracle.prompt import SYSTEM_PROMPT, build_user_prompt, parse_verdict_array
from feed_shield.core.errors import DecodeError, ProtocolError, TransportError
from feed_shield.core.interfaces import OracleTransport


class AnthropicTransport(OracleTransport):
    """Classify through the Messages API without the local relay."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 4096,
        base_url: str = "https://api.anthropic.com/v1",
        timeout: float = 60.0,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def send(self, entries: list[dict[str, str]]) -> list[Any]:
        """Send entries as one prompt and parse the JSON verdict array."""
        prompt = build_user_prompt([entry.get("text", "") for entry in entries])

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/messages",
                    headers={
                        "x-api-key": self.api_key,
                        "anthropic-version": "2023-06-01",
                        "content-type": "application/json",
                    },
                    json={
                        "model": self.model,
                        "max_tokens": self.max_tokens,
                        "system": SYSTEM_PROMPT,
                        "messages": [
                            {"role": "user", "content": prompt}
                        ],
                    },
                )
            except httpx.RequestError as e:
                raise TransportError(f"API request failed: {e}") from e

            if response.status_code != 200:
                raise ProtocolError(response.status_code, response.text)

            try:
                data = response.json()
            except ValueError as e:
                raise DecodeError("malformed API response") from e

        return parse_verdict_array(self._extract_text(data))

    def _extract_text(self, data: Any) -> str:
        """Concatenate the text content blocks of a Messages response."""
        content = data.get("content") if isinstance(data, dict) else None
        if not isinstance(content, list):
            raise DecodeError("API response has no content blocks")
        return "".join(block.get("text", "") for block in content if isinstance(block, dict))
