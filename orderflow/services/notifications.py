"""Notification service for order workflow emails.

Handles:
- Order submission emails to the customer and new-order alerts to admins
- Approval / rejection emails
- Payment confirmation emails
- Best-effort dispatch with a bounded wait, so a slow or failing mail
  provider never blocks or undoes a workflow transition
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import aiosmtplib
from jinja2 import Template

from orderflow.core.approval.states import status_label
from orderflow.core.config import Settings, get_settings
from orderflow.core.models import Order, Owner

logger = logging.getLogger(__name__)


class NotificationEvent(str, Enum):
    """Events that trigger notifications."""
    ORDER_SUBMITTED = "order_submitted"
    ORDER_APPROVED = "order_approved"
    ORDER_REJECTED = "order_rejected"
    PAYMENT_CONFIRMED = "payment_confirmed"
    ADMIN_NEW_ORDER = "admin_new_order"


_ITEMS_TEXT = """{% for item in items %}
- {{ item.name }} x{{ item.quantity }} @ {{ item.unit_price }} = {{ item.line_total }}{% endfor %}"""

_ITEMS_HTML = """<table>
{% for item in items %}<tr><td>{{ item.name }}</td><td>{{ item.quantity }}</td><td>{{ item.line_total }}</td></tr>
{% endfor %}</table>"""


EMAIL_TEMPLATES: Dict[NotificationEvent, Dict[str, str]] = {
    NotificationEvent.ORDER_SUBMITTED: {
        "subject": "Order Submitted #{{ order_number }} - Awaiting Approval",
        "text": """Hello {{ customer_name }},

Thank you for your order #{{ order_number }}.
""" + _ITEMS_TEXT + """

Total: {{ total }}
Status: {{ status }}

Your order is now awaiting admin approval. You'll receive another email
once it's approved and ready for payment.

---
{{ site_name }}
""",
        "html": """<h2>Order Submitted</h2>
<p>Hello {{ customer_name }}, thank you for your order <strong>#{{ order_number }}</strong>.</p>
""" + _ITEMS_HTML + """
<p><strong>Total:</strong> {{ total }}</p>
<p><strong>Status:</strong> {{ status }}</p>
<p>You'll receive another email once it's approved and ready for payment.</p>
<p>{{ site_name }}</p>""",
    },
    NotificationEvent.ORDER_APPROVED: {
        "subject": "Order Approved #{{ order_number }} - Ready for Payment",
        "text": """Hello {{ customer_name }},

Great news! Your order #{{ order_number }} has been approved and is ready for payment.
""" + _ITEMS_TEXT + """

Total: {{ total }}
{% if remarks %}Admin notes: {{ remarks }}
{% endif %}
---
{{ site_name }}
""",
        "html": """<h2>Order Approved!</h2>
<p>Hello {{ customer_name }}, your order <strong>#{{ order_number }}</strong> has been approved and is ready for payment.</p>
""" + _ITEMS_HTML + """
<p><strong>Total:</strong> {{ total }}</p>
{% if remarks %}<p><strong>Admin Notes:</strong> {{ remarks }}</p>{% endif %}
<p>{{ site_name }}</p>""",
    },
    NotificationEvent.ORDER_REJECTED: {
        "subject": "Order Update #{{ order_number }} - Not Approved",
        "text": """Hello {{ customer_name }},

Unfortunately your order #{{ order_number }} ({{ total }}) could not be approved.

Reason: {{ reason }}

---
{{ site_name }}
""",
        "html": """<h2>Order Not Approved</h2>
<p>Hello {{ customer_name }}, your order <strong>#{{ order_number }}</strong> ({{ total }}) could not be approved.</p>
<p><strong>Reason:</strong> {{ reason }}</p>
<p>{{ site_name }}</p>""",
    },
    NotificationEvent.PAYMENT_CONFIRMED: {
        "subject": "Payment Confirmed #{{ order_number }}",
        "text": """Hello {{ customer_name }},

We have received your payment for order #{{ order_number }}.

Amount: {{ total }}
Payment Method: {{ payment_method }}
Transaction: {{ transaction_id }}

Your order is now being processed.

---
{{ site_name }}
""",
        "html": """<h2>Payment Confirmed</h2>
<p>Hello {{ customer_name }}, we have received your payment for order <strong>#{{ order_number }}</strong>.</p>
<p><strong>Amount:</strong> {{ total }}<br>
<strong>Payment Method:</strong> {{ payment_method }}<br>
<strong>Transaction:</strong> {{ transaction_id }}</p>
<p>{{ site_name }}</p>""",
    },
    NotificationEvent.ADMIN_NEW_ORDER: {
        "subject": "New Order #{{ order_number }} Requires Approval",
        "text": """A new order requires your review:

Order: #{{ order_number }}
Customer: {{ customer_name }} <{{ customer_email }}>
Items: {{ item_count }}
Total: {{ total }}

---
{{ site_name }}
""",
        "html": """<h2>New Order Requires Approval</h2>
<p><strong>Order:</strong> #{{ order_number }}<br>
<strong>Customer:</strong> {{ customer_name }} &lt;{{ customer_email }}&gt;<br>
<strong>Items:</strong> {{ item_count }}<br>
<strong>Total:</strong> {{ total }}</p>
<p>{{ site_name }}</p>""",
    },
}


class NotificationGateway(ABC):
    """Sends order workflow notifications. Implementations may raise; callers log."""

    @abstractmethod
    def notify_order_submitted(self, order: Order, owner: Owner) -> None:
        ...

    @abstractmethod
    def notify_approved(self, order: Order, owner: Owner, remarks: Optional[str]) -> None:
        ...

    @abstractmethod
    def notify_rejected(self, order: Order, owner: Owner, remarks: Optional[str]) -> None:
        ...

    @abstractmethod
    def notify_payment_confirmed(self, order: Order, owner: Owner) -> None:
        ...

    @abstractmethod
    def notify_admins_order_submitted(self, order: Order, owner: Owner, admins: List[Owner]) -> None:
        ...


class EmailNotificationGateway(NotificationGateway):
    """
    Notification gateway that renders jinja2 templates and delivers over SMTP.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def notify_order_submitted(self, order: Order, owner: Owner) -> None:
        self._send_email(NotificationEvent.ORDER_SUBMITTED, owner.email, self._build_order_context(order, owner))

    def notify_approved(self, order: Order, owner: Owner, remarks: Optional[str]) -> None:
        context = self._build_order_context(order, owner)
        context["remarks"] = remarks
        self._send_email(NotificationEvent.ORDER_APPROVED, owner.email, context)

    def notify_rejected(self, order: Order, owner: Owner, remarks: Optional[str]) -> None:
        context = self._build_order_context(order, owner)
        context["reason"] = remarks or "No specific reason provided"
        self._send_email(NotificationEvent.ORDER_REJECTED, owner.email, context)

    def notify_payment_confirmed(self, order: Order, owner: Owner) -> None:
        context = self._build_order_context(order, owner)
        payment = order.payment_record
        context["payment_method"] = payment.method.value.replace("_", " ").title() if payment else "N/A"
        context["transaction_id"] = payment.provider_transaction_id if payment else "N/A"
        self._send_email(NotificationEvent.PAYMENT_CONFIRMED, owner.email, context)

    def notify_admins_order_submitted(self, order: Order, owner: Owner, admins: List[Owner]) -> None:
        recipients = [admin.email for admin in admins if admin.email]
        if not recipients:
            logger.info("No admin users with email addresses found")
            return

        context = self._build_order_context(order, owner)
        failed = 0
        for email in recipients:
            try:
                self._send_email(NotificationEvent.ADMIN_NEW_ORDER, email, context)
            except Exception:
                logger.exception(f"Failed to send new-order alert for {order.id} to {email}")
                failed += 1
        if failed:
            logger.warning(f"New-order alert for {order.id} failed for {failed}/{len(recipients)} admins")

    def render(self, event: NotificationEvent, context: Dict[str, Any]) -> Dict[str, str]:
        """Render subject, text and html bodies for an event."""
        template = EMAIL_TEMPLATES[event]
        return {
            "subject": Template(template["subject"]).render(**context).strip(),
            "text": Template(template["text"]).render(**context),
            "html": Template(template["html"], autoescape=True).render(**context),
        }

    def _send_email(self, event: NotificationEvent, to_email: Optional[str], context: Dict[str, Any]) -> None:
        if not to_email:
            logger.warning(f"No email address for {event.value} notification, skipping")
            return

        rendered = self.render(event, context)
        self._deliver_email(to_email, rendered["subject"], rendered["text"], rendered["html"])

    def _deliver_email(self, to_email: str, subject: str, text: str, html: str) -> None:
        """Actually deliver the email via SMTP."""
        if not self.settings.smtp_host:
            logger.warning("SMTP not configured, skipping email delivery")
            return

        msg = MIMEMultipart("alternative")
        msg["From"] = f"{self.settings.smtp_from_name} <{self.settings.smtp_from_email}>"
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(text, "plain"))
        msg.attach(MIMEText(html, "html"))

        asyncio.run(
            aiosmtplib.send(
                msg,
                hostname=self.settings.smtp_host,
                port=self.settings.smtp_port,
                username=self.settings.smtp_user,
                password=self.settings.smtp_password,
                start_tls=self.settings.smtp_use_tls,
                timeout=self.settings.notification_timeout,
            )
        )
        logger.info(f"Email '{subject}' sent to {to_email}")

    def _build_order_context(self, order: Order, owner: Owner) -> Dict[str, Any]:
        """Build template context for order notifications."""
        currency = self.settings.currency
        return {
            "order_number": order.id,
            "customer_name": owner.display_name,
            "customer_email": owner.email or "N/A",
            "total": f"{order.total} {currency}",
            "status": status_label(order),
            "item_count": len(order.line_items),
            "items": [
                {
                    "name": item.product_name or item.product_ref,
                    "quantity": item.quantity,
                    "unit_price": f"{item.unit_price} {currency}",
                    "line_total": f"{item.line_total} {currency}",
                }
                for item in order.line_items
            ],
            "site_name": self.settings.site_name,
        }


class NotificationDispatcher:
    """
    Runs gateway calls on a worker pool and waits a bounded time for them.

    A call that fails is logged; a call that outlives the timeout is left to
    finish in the background and reported as abandoned. Neither ever raises.
    """

    def __init__(self, gateway: NotificationGateway, *, timeout: float = 10.0, max_workers: int = 4):
        self.gateway = gateway
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="orderflow-notify")

    def dispatch(self, send: Callable[..., None], *args: Any, order_id: Optional[str] = None) -> bool:
        """
        Run a gateway call best-effort.

        Returns:
            True if the call completed within the timeout without raising
        """
        name = getattr(send, "__name__", repr(send))
        try:
            future = self._executor.submit(send, *args)
            future.result(timeout=self.timeout)
        except FutureTimeoutError:
            logger.warning(f"Notification {name} for order {order_id} timed out after {self.timeout}s, abandoning")
            return False
        except Exception:
            logger.exception(f"Notification {name} failed for order {order_id}")
            return False
        return True

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait)
