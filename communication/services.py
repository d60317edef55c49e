"""
Fan-out of one message to many users: an in-app Notification per user and,
when an email is given, a QueuedEmail per reachable address.
"""
import logging

from .models import (
    CATEGORY_EMERGENCY,
    CATEGORY_SYSTEM,
    Notification,
    NotificationPreference,
    QueuedEmail,
)

logger = logging.getLogger(__name__)

BULK_BATCH_SIZE = 500


def _preferences(user_ids):
    return {p.user_id: p for p in NotificationPreference.objects.filter(user_id__in=user_ids)}


def notify_users(users_qs, title, body="", *, category=CATEGORY_SYSTEM, level="INFO",
                 email_subject=None, email_body=None, emergency=None):
    """
    Returns (inapp_count, email_count). `emergency` links every row to the
    EmergencyRequest that caused it and puts its email at the head of the outbox.
    """
    recipients = list(users_qs.values_list("id", "email"))
    if not recipients:
        return 0, 0

    category = (category or CATEGORY_SYSTEM).upper()
    prefs = _preferences([uid for uid, _ in recipients])
    with_email = bool(email_subject and email_body)
    priority = (
        QueuedEmail.PRIORITY_URGENT if category == CATEGORY_EMERGENCY else QueuedEmail.PRIORITY_ROUTINE
    )

    notes, mails = [], []
    for uid, address in recipients:
        pref = prefs.get(uid)

        if pref is None or pref.wants_inapp(category):
            notes.append(Notification(
                user_id=uid, category=category, level=level,
                title=title, body=body, emergency=emergency,
            ))

        if with_email and address and (pref is None or pref.wants_email(category)):
            mails.append(QueuedEmail(
                user_id=uid, to_email=address, emergency=emergency,
                subject=email_subject, body=email_body, priority=priority,
            ))

    Notification.objects.bulk_create(notes, batch_size=BULK_BATCH_SIZE)
    QueuedEmail.objects.bulk_create(mails, batch_size=BULK_BATCH_SIZE)

    logger.info(
        "Notified %d user(s) [%s%s]: %d in-app, %d email",
        len(recipients), category,
        f" {emergency.request_id}" if emergency is not None else "",
        len(notes), len(mails),
    )
    return len(notes), len(mails)
