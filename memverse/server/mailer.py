"""
Outbound email over SMTP (aiosmtplib).

Three message kinds:
- Verse notification (daily or weekly), used as the dispatcher's Notifier
- Password reset one-time code
- Welcome mail on registration

When smtp.enabled is false every send is logged and skipped.
"""

import html
from email.message import EmailMessage
from typing import Any, Dict

import aiosmtplib

from sdk.logging import getLogger
from memverse.core.models import Subscriber, Verse
from memverse.core.pace import parsePace


VERSE_TEMPLATE = """\
<html>
  <body style="font-family: Georgia, serif; color: #2d2d2d;">
    <p>Hello {name},</p>
    <p>Here is your {paceLabel} memory verse:</p>
    <blockquote style="font-size: 18px; border-left: 4px solid #8b6f47; padding-left: 12px;">
      {text}
      <br><strong>{reference} ({translation})</strong>
    </blockquote>
    <p><a href="{dashboardUrl}">Open your dashboard</a> to write a note or save it as a favourite.</p>
    <p style="font-size: 12px; color: #888;"><a href="{unsubscribeUrl}">Unsubscribe</a></p>
  </body>
</html>
"""

RESET_TEMPLATE = """\
<html>
  <body style="font-family: Arial, sans-serif;">
    <p>Use the code below to reset your Memory Verse password.</p>
    <p style="font-size: 28px; letter-spacing: 6px;"><strong>{otp}</strong></p>
    <p>The code expires in {minutes} minutes. If you did not ask for a reset you can ignore this email.</p>
  </body>
</html>
"""

WELCOME_TEMPLATE = """\
<html>
  <body style="font-family: Arial, sans-serif;">
    <p>Welcome to Memory Verse, {name}!</p>
    <p>Complete your profile to start receiving verses at your chosen pace.</p>
    <p><a href="{dashboardUrl}">Go to your dashboard</a></p>
  </body>
</html>
"""


class Mailer:
    """SMTP mailer; also satisfies the Notifier protocol"""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.log = getLogger()

        self.enabled = config.get('enabled', False)
        self.host = config.get('host', 'localhost')
        self.port = config.get('port', 587)
        self.username = config.get('username')
        self.password = config.get('password')
        self.startTls = config.get('startTls', True)
        self.timeout = config.get('timeoutSeconds', 20)
        self.fromAddress = config.get('fromAddress', 'no-reply@memoryverse.app')
        self.fromName = config.get('fromName', 'Memory Verse')
        self.dashboardUrl = config.get('dashboardUrl', 'https://memoryverse.app/dashboard')
        self.unsubscribeUrl = config.get('unsubscribeUrl', 'https://memoryverse.app/unsubscribe')

    async def notify(self, subscriber: Subscriber, verse: Verse) -> None:
        """Send the verse email for a committed delivery"""
        paceLabel = parsePace(subscriber.pace).value
        body = VERSE_TEMPLATE.format(
            name=html.escape(subscriber.userName or subscriber.email),
            paceLabel=paceLabel,
            text=html.escape(verse.text),
            reference=html.escape(verse.reference),
            translation=html.escape(verse.translation),
            dashboardUrl=self.dashboardUrl,
            unsubscribeUrl=self.unsubscribeUrl
        )
        await self.sendHtml(subscriber.email, f"Your {paceLabel} memory verse", body)

    async def sendPasswordReset(self, email: str, otp: str, minutes: int):
        body = RESET_TEMPLATE.format(otp=html.escape(otp), minutes=minutes)
        await self.sendHtml(email, "Reset Your Password OTP", body)

    async def sendWelcome(self, email: str):
        body = WELCOME_TEMPLATE.format(name=html.escape(email), dashboardUrl=self.dashboardUrl)
        await self.sendHtml(email, "Welcome to Memory Verse", body)

    async def sendHtml(self, to: str, subject: str, body: str):
        """Build and send one HTML message; raises on SMTP failure"""
        if not self.enabled:
            self.log.info(f"[Mailer] SMTP disabled, skipped '{subject}' to {to}")
            return

        message = EmailMessage()
        message['From'] = f"{self.fromName} <{self.fromAddress}>"
        message['To'] = to
        message['Subject'] = subject
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(body, subtype='html')

        await aiosmtplib.send(
            message,
            hostname=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            start_tls=self.startTls,
            timeout=self.timeout
        )
        self.log.info(f"[Mailer] Sent '{subject}' to {to}")
