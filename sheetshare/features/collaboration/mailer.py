"""
SendGrid email for collaboration invitations.

If SENDGRID_API_KEY is empty, emails are logged but not sent,
allowing local development without a real API key.
"""

import logging
from html import escape
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, HtmlContent

from sheetshare.core.config import Settings, settings as default_settings
from sheetshare.features.access.permissions import Role

logger = logging.getLogger("sheetshare")


def invitation_url(app_url: str, token: str) -> str:
    return f"{app_url.rstrip('/')}/collaborate/{token}"


def build_invitation_html(
    file_name: str,
    role: Role,
    url: str,
    message: Optional[str] = None,
    ttl_days: int = 7,
) -> str:
    """Render the invitation body. User-supplied text is escaped."""
    role_label = escape(role.value)
    capabilities = ["<li>View the Excel data and generated charts</li>"]
    if role == Role.EDITOR:
        capabilities.append("<li>Edit and modify the data</li>")
        capabilities.append("<li>Generate new charts and analyses</li>")

    message_block = ""
    if message:
        message_block = (
            '<p style="background: #f3f4f6; padding: 15px; border-radius: 8px; font-style: italic;">'
            f'"{escape(message)}"</p>'
        )

    return f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h2 style="color: #2563eb;">You've been invited to collaborate!</h2>
          <p>You've been invited to collaborate on the Excel file "<strong>{escape(file_name)}</strong>" with <strong>{role_label}</strong> access.</p>
          {message_block}
          <div style="margin: 30px 0;">
            <a href="{escape(url, quote=True)}" style="background: #2563eb; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; display: inline-block;">Accept Invitation</a>
          </div>
          <p style="color: #6b7280; font-size: 14px;">As a <strong>{role_label}</strong>, you will be able to:</p>
          <ul style="color: #6b7280; font-size: 14px;">
            {''.join(capabilities)}
          </ul>
          <p style="color: #6b7280; font-size: 12px; margin-top: 30px;">
            This invitation will expire in {ttl_days} days. If you didn't expect this invitation, you can safely ignore this email.
          </p>
        </div>
    """


class InvitationMailer:
    """
    Invitation email sender using SendGrid.

    send_invitation never raises: a failed send is logged and reported as False,
    the invitation itself stays valid.
    """

    def __init__(self, settings: Optional[Settings] = None):
        cfg = settings or default_settings
        self.api_key = cfg.SENDGRID_API_KEY
        self.from_email = cfg.SENDGRID_FROM_EMAIL
        self.from_name = cfg.SENDGRID_FROM_NAME
        self.app_url = cfg.APP_URL
        self.ttl_days = cfg.INVITATION_TTL_DAYS
        self._client = None

    @property
    def client(self) -> Optional[SendGridAPIClient]:
        """Lazy-init SendGrid client."""
        if self._client is None and self.api_key:
            self._client = SendGridAPIClient(api_key=self.api_key)
        return self._client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def send_invitation(
        self,
        to: str,
        file_name: str,
        role: Role,
        token: str,
        message: Optional[str] = None,
    ) -> bool:
        subject = f'Invitation to collaborate on "{file_name}"'
        html_content = build_invitation_html(
            file_name=file_name,
            role=role,
            url=invitation_url(self.app_url, token),
            message=message,
            ttl_days=self.ttl_days,
        )

        if not self.is_configured:
            logger.warning(
                "SendGrid API key not configured, simulating invitation email. to=%s subject=%s",
                to,
                subject,
            )
            return True

        mail = Mail(
            from_email=Email(self.from_email, self.from_name),
            to_emails=To(to),
            subject=subject,
            html_content=HtmlContent(html_content),
        )

        try:
            response = self.client.send(mail)
            logger.info("Invitation email sent. to=%s status=%s", to, response.status_code)
            return True
        except Exception as exc:
            logger.error("Failed to send invitation email. to=%s error=%s", to, exc)
            return False
