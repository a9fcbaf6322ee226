from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

BOT_USERNAME = "OpenCollective Activity Bot"
BOT_ICON_URL = "https://opencollective.com/favicon.ico"


class DeliveryError(RuntimeError):
    pass


def build_payload(text: str, channel: Optional[str] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "text": text,
        "username": BOT_USERNAME,
        "icon_url": BOT_ICON_URL,
    }
    if channel:
        payload["channel"] = channel
    return payload


def _recording_hooks() -> Dict[str, Any]:
    async def log_request(request: httpx.Request) -> None:
        print(f"[record] >>> {request.method} {request.url} {request.content.decode('utf-8', 'replace')}")

    async def log_response(response: httpx.Response) -> None:
        await response.aread()
        print(f"[record] <<< {response.status_code} {response.request.url} {response.text}")

    return {"request": [log_request], "response": [log_response]}


async def post_message(
    text: str,
    webhook_url: str,
    channel: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
    timeout_s: float = 20.0,
    record: bool = False,
) -> None:
    """
    Deliver ``text`` to a Slack incoming webhook.

    Single attempt: no retry or backoff.

    Raises:
        DeliveryError: On network failure or a non-2xx response
    """
    if not webhook_url:
        raise DeliveryError("Missing webhook URL")

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(
            timeout=timeout_s,
            event_hooks=_recording_hooks() if record else None,
        )

    try:
        resp = await client.post(webhook_url, json=build_payload(text, channel))
        resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise DeliveryError(f"http_status:{e.response.status_code}: {e.response.text[:200]}") from e
    except (httpx.TimeoutException, httpx.NetworkError) as e:
        raise DeliveryError(f"network:{type(e).__name__}") from e
    finally:
        if owns_client:
            await client.aclose()
