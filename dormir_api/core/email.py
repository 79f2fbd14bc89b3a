# dormir-la-haut-api/dormir_api/core/email.py
import html
import logging
from typing import Optional
import httpx
from dormir_api import config

logger = logging.getLogger(__name__)

TYPE_LABELS = {
    "new_poi": "Nouveau spot",
    "edit_poi": "Modification de spot",
    "comment": "Commentaire",
    "photo": "Photo",
}


def _type_label(modification_type: str) -> str:
    return TYPE_LABELS.get(modification_type, modification_type)


class EmailSender:
    """Transactional email through the Brevo HTTP API. Without an API key nothing is sent."""

    def __init__(self, api_key: Optional[str] = None, api_url: str = config.BREVO_API_URL,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.api_url = api_url
        self.transport = transport

    async def send_email(self, to: str, subject: str, html: str, text: Optional[str] = None) -> bool:
        if not self.api_key:
            logger.info("BREVO_API_KEY is not set, skipping email to %s", to)
            return True

        payload = {
            "sender": {"name": config.EMAIL_FROM_NAME, "email": config.EMAIL_FROM_ADDRESS},
            "to": [{"email": to}],
            "subject": subject,
            "htmlContent": html,
            "textContent": text or subject,
        }
        headers = {"api-key": self.api_key, "accept": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=10, transport=self.transport) as client:
                response = await client.post(self.api_url, json=payload, headers=headers)
                response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.warning("Email to %s failed: %s", to, e)
            return False

    async def send_modification_approved_email(self, email: str, user_name: str, modification_type: str,
                                               poi_name: Optional[str] = None) -> bool:
        label = _type_label(modification_type)
        target = f" pour « {poi_name} »" if poi_name else ""
        safe_target = f" pour « {html.escape(poi_name)} »" if poi_name else ""
        text = (
            f"Bonjour {user_name},\n\n"
            f"Votre contribution ({label}){target} a été approuvée et est maintenant visible.\n\n"
            f"{config.FRONTEND_URL}"
        )
        body = (
            f"<p>Bonjour {html.escape(user_name)},</p>"
            f"<p>Votre contribution (<strong>{label}</strong>){safe_target} a été approuvée "
            f"et est maintenant visible.</p>"
            f"<p><a href=\"{config.FRONTEND_URL}\">Dormir Là-Haut</a></p>"
        )
        return await self.send_email(email, "✅ Contribution approuvée - Dormir Là-Haut", body, text)

    async def send_modification_rejected_email(self, email: str, user_name: str, modification_type: str,
                                               reason: str, poi_name: Optional[str] = None) -> bool:
        label = _type_label(modification_type)
        target = f" pour « {poi_name} »" if poi_name else ""
        safe_target = f" pour « {html.escape(poi_name)} »" if poi_name else ""
        text = (
            f"Bonjour {user_name},\n\n"
            f"Votre contribution ({label}){target} n'a pas été retenue.\n"
            f"Raison : {reason}\n\n"
            f"{config.FRONTEND_URL}"
        )
        body = (
            f"<p>Bonjour {html.escape(user_name)},</p>"
            f"<p>Votre contribution (<strong>{label}</strong>){safe_target} n'a pas été retenue.</p>"
            f"<p><strong>Raison :</strong> {html.escape(reason)}</p>"
            f"<p><a href=\"{config.FRONTEND_URL}\">Dormir Là-Haut</a></p>"
        )
        return await self.send_email(email, "Contribution non retenue - Dormir Là-Haut", body, text)


def get_email_sender() -> EmailSender:
    return EmailSender(api_key=config.BREVO_API_KEY)
