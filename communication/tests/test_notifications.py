# communication/tests/test_notifications.py
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from billing.models import Subscription
from communication.models import Notification
from communication.services.notification_service import NotificationService
from text_sessions.models import TextSession, TextSessionStatus
from text_sessions.signals import session_status_changed

User = get_user_model()


class TextSessionNotificationTests(TestCase):
    def setUp(self):
        self.patient = User.objects.create_user(
            username='testpatient', password='testpass123', role='patient',
            first_name='Chikondi', last_name='Phiri'
        )
        self.doctor = User.objects.create_user(
            username='testdoctor', password='testpass123', role='doctor',
            first_name='Ada', last_name='Banda'
        )
        Subscription.objects.create(patient=self.patient, text_sessions_remaining=2)
        now = timezone.now()
        self.session = TextSession.objects.create(
            patient=self.patient,
            doctor=self.doctor,
            started_at=now,
            last_activity_at=now,
            sessions_remaining_before_start=2
        )

    def test_both_participants_are_notified(self):
        NotificationService.notify_text_session(self.session, 'waiting_for_doctor', 'active')

        patient_note = Notification.objects.get(recipient=self.patient)
        doctor_note = Notification.objects.get(recipient=self.doctor)
        self.assertEqual(patient_note.title, 'Text session started')
        self.assertIn('Dr. Ada Banda', patient_note.message)
        self.assertIn('20 minutes', patient_note.message)
        self.assertIn('Chikondi Phiri', doctor_note.message)
        self.assertEqual(doctor_note.related_object_type, 'text_session')
        self.assertEqual(doctor_note.related_object_id, self.session.pk)
        self.assertEqual(doctor_note.data['previous_status'], 'waiting_for_doctor')

    def test_expired_message_mentions_no_deduction(self):
        self.session.status = TextSessionStatus.EXPIRED
        NotificationService.notify_text_session(self.session, 'waiting_for_doctor', 'expired')

        note = Notification.objects.get(recipient=self.patient)
        self.assertIn('No session was deducted', note.message)

    def test_signal_creates_notifications(self):
        session_status_changed.send(
            sender=TextSession, session=self.session, previous_status=None, status='waiting_for_doctor'
        )
        self.assertEqual(Notification.objects.filter(notification_type='text_session').count(), 2)

    def test_notification_failure_does_not_propagate(self):
        with patch.object(NotificationService, 'notify_text_session', side_effect=RuntimeError('db')):
            with self.assertLogs('communication.signals', level='ERROR'):
                session_status_changed.send(
                    sender=TextSession, session=self.session, previous_status='active', status='ended'
                )


class NotificationViewSetTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username='testpatient', password='testpass123')
        self.other = User.objects.create_user(username='other', password='testpass123')
        for i in range(3):
            NotificationService.create_notification(self.user, 'system', f'Note {i}', 'Body')
        NotificationService.create_notification(self.other, 'system', 'Private', 'Body')

        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

    def test_list_own_notifications(self):
        response = self.client.get(reverse('notification-list'))
        self.assertEqual(response.data['count'], 3)

    def test_mark_read(self):
        note = Notification.objects.filter(recipient=self.user).first()

        response = self.client.post(reverse('notification-mark-read', args=[note.id]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        note.refresh_from_db()
        self.assertIsNotNone(note.read_at)

    def test_mark_all_read_and_unread_count(self):
        self.assertEqual(self.client.get(reverse('notification-unread-count')).data['count'], 3)

        response = self.client.post(reverse('notification-mark-all-read'))

        self.assertEqual(response.data['count'], 3)
        self.assertEqual(self.client.get(reverse('notification-unread-count')).data['count'], 0)
        self.assertEqual(NotificationService.get_unread_count(self.other), 1)

    def test_cannot_read_others_notifications(self):
        note = Notification.objects.get(recipient=self.other)
        response = self.client.get(reverse('notification-detail', args=[note.id]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
