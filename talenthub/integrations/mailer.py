import logging

import httpx

logger = logging.getLogger(__name__)


class ResendEmail:
    def __init__(self, api_url: str, api_key: str, sender: str, http: httpx.AsyncClient) -> None:
        self._url = f"{api_url.rstrip('/')}/emails"
        self._api_key = api_key
        self._sender = sender
        self._http = http

    async def send(self, to: str, subject: str, html: str) -> None:
        response = await self._http.post(
            self._url,
            json={"from": self._sender, "to": [to], "subject": subject, "html": html},
            headers={"Authorization": f"Bearer {self._api_key}"},
        )
        response.raise_for_status()
        logger.debug("Email %r accepted for %s: %s", subject, to, response.json().get("id"))


async def send_best_effort(mailer: ResendEmail, to: str, subject: str, html: str) -> None:
    try:
        await mailer.send(to, subject, html)
    except Exception:  # noqa: BLE001
        logger.exception("Email delivery to %s failed", to)


def otp_email_html(otp: str, ttl_minutes: int) -> str:
    return (
        '<div style="font-family:Arial,sans-serif;max-width:420px;margin:0 auto;padding:32px">'
        '<h2 style="color:#1976d2;margin:0 0 8px">Verify your email</h2>'
        "<p>Enter the code below to complete your <strong>Talent Code Hub</strong> registration. "
        f"It expires in {ttl_minutes} minutes.</p>"
        f'<div style="font-size:40px;font-weight:700;letter-spacing:14px;text-align:center">{otp}</div>'
        "<p style=\"color:#999;font-size:12px\">If you didn't request this, you can safely ignore this email.</p>"
        "</div>"
    )
