"""Email notifications rendered from Django templates.

Templates live in ``templates/emails/<name>.txt``. Sending is
fire-and-forget: failures are logged with the template and recipient and
never raised, so a mail outage cannot fail an order or VPS operation.
"""

import logging
import smtplib

from django.conf import settings
from django.core.mail import send_mail
from django.template import TemplateDoesNotExist
from django.template.loader import render_to_string

from .ports import NotifierPort

logger = logging.getLogger(__name__)

SUBJECTS = {
    "order_created": "Order {order_number} received",
    "payment_confirmed": "Payment received for order {order_number}",
    "vps_provisioned": "Your server {name} is ready",
    "vps_suspended": "Your server {name} has been suspended",
    "vps_reactivated": "Your server {name} has been reactivated",
    "ticket_reply": "New reply on ticket: {subject}",
    "custom_quote_request": "Custom quote request for {product_name}",
}


class DjangoEmailNotifier(NotifierPort):
    def send(self, template: str, recipient: str, data: dict) -> bool:
        if not recipient:
            logger.warning("email skipped: no recipient", extra={"template": template})
            return False
        context = {"frontend_url": settings.FRONTEND_URL, **data}
        try:
            subject = SUBJECTS[template].format(**context)
            body = render_to_string(f"emails/{template}.txt", context)
            send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, [recipient], fail_silently=False)
        except (KeyError, TemplateDoesNotExist, smtplib.SMTPException, OSError):
            logger.exception("email send failed", extra={"template": template, "recipient": recipient})
            return False
        logger.info("email sent", extra={"template": template, "recipient": recipient})
        return True
