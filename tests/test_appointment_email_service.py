from datetime import timedelta

from booking_api.db.enums import AppointmentEmailType, AppointmentStatus, EmailSentBy, JobType
from booking_api.db.models import Job
from booking_api.services import email_service
from booking_api.services.appointment_email_service import (
    QueuedEmailNotifier,
    action_link_variables,
    build_appointment_variables,
    render_appointment_email,
)
from conftest import NOW


def test_render_template_fills_known_and_blanks_unknown():
    assert email_service.render_template("Hi {{name}}{{missing}}!", {"name": "Jane"}) == "Hi Jane!"


def test_variables_use_appointment_timezone(make_appointment):
    appointment = make_appointment(AppointmentStatus.CONFIRMED, scheduled_at=NOW + timedelta(days=3))

    variables = build_appointment_variables(appointment, base_url="https://book.example.com/")

    # NOW + 3 days is 2026-03-13 12:00 UTC, 08:00 in Guadeloupe
    assert variables["scheduled_date"] == "Friday, March 13, 2026"
    assert variables["scheduled_time"].startswith("08:00")
    assert variables["client_name"] == "Jane Doe"
    assert variables["cancel_url"] == (
        f"https://book.example.com/appointments/{appointment.id}/cancel"
        f"?token={appointment.cancellation_token}"
    )


def test_render_confirmed_email(make_appointment):
    appointment = make_appointment(AppointmentStatus.CONFIRMED, scheduled_at=NOW + timedelta(days=3))

    subject, html = render_appointment_email(AppointmentEmailType.CONFIRMED, appointment)

    assert subject == "Your appointment is confirmed"
    assert "Jane Doe" in html
    assert "{{" not in html


def test_action_link_variables(make_appointment):
    appointment = make_appointment()

    links = action_link_variables(appointment, "a", "r", "s", api_url="https://api.example.com")

    assert links["accept_url"] == f"https://api.example.com/email-actions/appointments/{appointment.id}/accept?token=a"
    assert links["reschedule_url"].endswith("/propose-reschedule?token=s")


def test_queued_notifier_routes_admin_email(db, make_appointment):
    appointment = make_appointment()
    notifier = QueuedEmailNotifier(db, admin_email="owner@example.com")

    admin_log = notifier.send(AppointmentEmailType.ADMIN_NEW_REQUEST, appointment)
    client_log = notifier.send(
        AppointmentEmailType.CANCELLED, appointment, sent_by=EmailSentBy.ADMIN
    )
    db.commit()

    assert admin_log.recipient_email == "owner@example.com"
    assert client_log.recipient_email == "client@example.com"
    assert client_log.sent_by == "admin"
    assert db.query(Job).filter(Job.job_type == JobType.SEND_EMAIL.value).count() == 2


def test_queued_notifier_skips_admin_email_when_unconfigured(db, make_appointment):
    appointment = make_appointment()
    notifier = QueuedEmailNotifier(db, admin_email="")

    assert notifier.send(AppointmentEmailType.ADMIN_NEW_REQUEST, appointment) is None


def test_client_text_is_escaped_in_html_body(make_appointment):
    appointment = make_appointment()
    appointment.message = '<a href="https://evil.example/accept">Accept this request</a>'
    appointment.contact.first_name = "<b>Jane</b>"

    subject, html = render_appointment_email(
        AppointmentEmailType.ADMIN_NEW_REQUEST,
        appointment,
        extra={"accept_url": "https://api.example.com/accept?token=a"},
    )

    assert '<a href="https://evil.example/accept">' not in html
    assert "&lt;a href=&quot;https://evil.example/accept&quot;&gt;Accept this request&lt;/a&gt;" in html
    assert "&lt;b&gt;Jane&lt;/b&gt; Doe" in html
    assert 'href="https://api.example.com/accept?token=a"' in html
    # subjects are plain text
    assert subject == "New appointment request - <b>Jane</b> Doe"


def test_rejection_reason_is_escaped(make_appointment):
    appointment = make_appointment(AppointmentStatus.REJECTED)

    _, html = render_appointment_email(
        AppointmentEmailType.REJECTED, appointment, extra={"rejection_reason": "<script>x</script>"}
    )

    assert "<script>" not in html
    assert "&lt;script&gt;x&lt;/script&gt;" in html
