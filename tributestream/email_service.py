# tributestream/email_service.py
import json
import logging
from urllib.error import URLError

from flask import render_template
from python_http_client.exceptions import HTTPError
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Content, Email, Mail, MimeType, ReplyTo, To

from tributestream.config import (
    SENDGRID_API_KEY, FROM_EMAIL, FROM_NAME, CONTACT_EMAIL, APP_BASE_URL
)
from tributestream.exceptions import ExternalServiceError, ValidationError
from tributestream.utils import get_str, is_valid_email, memorial_url, require_fields

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = 'Email logged (SendGrid not configured)'


def format_amount(cents):
    """Cents -> '123.45'"""
    return f'{(cents or 0) / 100:.2f}'


def _sendgrid_error(error):
    try:
        errors = json.loads(error.body or '{}').get('errors') or []
    except (TypeError, ValueError, AttributeError):
        errors = []
    if errors and errors[0].get('message'):
        return f"Email service error: {errors[0]['message']}"
    if error.status_code in (401, 403):
        return 'Email service authentication failed'
    if error.status_code == 429:
        return 'Email service is busy, please try again later'
    return 'Failed to send email'


def build_message(to_email, subject, html, text, reply_to=None):
    message = Mail(
        from_email=Email(FROM_EMAIL, FROM_NAME),
        to_emails=To(to_email),
        subject=subject,
        plain_text_content=Content(MimeType.text, text),
        html_content=Content(MimeType.html, html)
    )
    if reply_to:
        message.reply_to = ReplyTo(reply_to['email'], reply_to.get('name'))
    return message


def send_email(to_email, subject, html, text, reply_to=None):
    """Send through SendGrid; without an API key the email is only logged"""
    if not SENDGRID_API_KEY:
        logger.info(f"📧 {NOT_CONFIGURED_MESSAGE}: to={to_email} subject={subject!r}")
        return {'success': True, 'message': NOT_CONFIGURED_MESSAGE}

    message = build_message(to_email, subject, html, text, reply_to)
    try:
        response = SendGridAPIClient(SENDGRID_API_KEY).send(message)
    except HTTPError as e:
        logger.error(f"❌ SendGrid rejected email to {to_email}: {e.status_code} {e.body}")
        raise ExternalServiceError(_sendgrid_error(e))
    except URLError as e:
        logger.error(f"❌ SendGrid request failed: {e}")
        raise ExternalServiceError('Failed to send email')

    logger.info(f"✅ Email sent to {to_email}: {subject!r} (status {response.status_code})")
    return {'success': True, 'message': 'Email sent'}


def send_credentials_email(email, password, memorial, funeral_home=None):
    """Login details for a newly created memorial owner"""
    context = {
        'email': email,
        'password': password,
        'loved_one_name': memorial['loved_one_name'],
        'memorial_url': memorial_url(memorial['custom_url']),
        'login_url': f'{APP_BASE_URL}/login',
        'funeral_home': funeral_home,
    }
    subject = f"Your Memorial Account - {memorial['loved_one_name']}"
    return send_email(
        email, subject,
        render_template('emails/credentials.html', **context),
        render_template('emails/credentials.txt', **context)
    )


def send_payment_receipt(email, customer_name, payment_intent_id, amount_cents, booking_items, memorial=None):
    context = {
        'customer_name': customer_name or 'there',
        'payment_intent_id': payment_intent_id,
        'amount': format_amount(amount_cents),
        'items': [
            {**item, 'price_display': f"{float(item.get('price', 0)):.2f}",
             'total_display': f"{float(item.get('total', 0)):.2f}"}
            for item in booking_items or []
        ],
        'loved_one_name': (memorial or {}).get('loved_one_name'),
        'memorial_url': memorial_url(memorial['custom_url']) if memorial else None,
    }
    subject = f'Payment Receipt - {payment_intent_id}'
    return send_email(
        email, subject,
        render_template('emails/receipt.html', **context),
        render_template('emails/receipt.txt', **context)
    )


def send_contact_email(data):
    """Forward a contact form submission to the business inbox"""
    require_fields(data, 'name', 'email', 'subject', 'message')
    email = get_str(data, 'email')
    if not is_valid_email(email):
        raise ValidationError('Invalid email address')

    context = {
        'name': get_str(data, 'name'),
        'email': email,
        'subject': get_str(data, 'subject'),
        'message': get_str(data, 'message'),
    }
    return send_email(
        CONTACT_EMAIL,
        f"Contact Form: {context['subject']}",
        render_template('emails/contact.html', **context),
        render_template('emails/contact.txt', **context),
        reply_to={'email': email, 'name': context['name']}
    )
