# text_sessions/views.py
from rest_framework import viewsets, permissions, status
from rest_framework.decorators import action
from rest_framework.response import Response
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi
import logging

from users.models import CustomUser
from .clock import default_clock
from .exceptions import InsufficientCredits, InvalidParticipant, SessionAlreadyOpen
from .models import TextSession
from .permissions import IsSessionParticipant
from .serializers import (
    TextSessionSerializer, StartTextSessionSerializer,
    MessageReceivedSerializer, SessionStatusSerializer
)
from .services.lifecycle_service import SessionLifecycleController

logger = logging.getLogger(__name__)


class TextSessionViewSet(viewsets.ReadOnlyModelViewSet):
    """
    API endpoint for instant text sessions between patients and doctors
    """
    serializer_class = TextSessionSerializer
    permission_classes = [permissions.IsAuthenticated, IsSessionParticipant]
    # Replaced in tests to control time
    clock = None

    def get_queryset(self):
        user = self.request.user
        queryset = TextSession.objects.select_related('patient', 'doctor')

        # Admin can see all
        if user.is_staff:
            return queryset
        return queryset.for_participant(user)

    def get_controller(self):
        return SessionLifecycleController(clock=self.clock)

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context['clock'] = self.clock or default_clock
        return context

    @swagger_auto_schema(
        operation_description="Start a text session with a doctor",
        request_body=StartTextSessionSerializer,
        responses={
            201: openapi.Response("Session started"),
            403: openapi.Response("No text sessions remaining"),
            404: openapi.Response("Doctor not found"),
            409: openapi.Response("An open session with this doctor already exists"),
        }
    )
    @action(detail=False, methods=['post'])
    def start(self, request):
        """Open a session waiting for the doctor's first reply"""
        serializer = StartTextSessionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        if request.user.role != 'patient':
            return Response(
                {'error': 'Only patients can start text sessions', 'code': InvalidParticipant.code},
                status=status.HTTP_400_BAD_REQUEST
            )

        doctor = CustomUser.objects.filter(
            pk=serializer.validated_data['doctor_id'], role='doctor'
        ).first()
        if doctor is None:
            return Response(
                {'error': 'Doctor not found', 'code': InvalidParticipant.code},
                status=status.HTTP_404_NOT_FOUND
            )

        controller = self.get_controller()
        try:
            session = controller.start(
                request.user, doctor, reason=serializer.validated_data.get('reason')
            )
        except InsufficientCredits as e:
            return Response(
                {'error': str(e), 'code': e.code},
                status=status.HTTP_403_FORBIDDEN
            )
        except SessionAlreadyOpen as e:
            return Response(
                {'error': str(e), 'code': e.code, 'session_id': e.session.pk if e.session else None},
                status=status.HTTP_409_CONFLICT
            )
        except InvalidParticipant as e:
            return Response(
                {'error': str(e), 'code': e.code},
                status=status.HTTP_400_BAD_REQUEST
            )

        now = controller.clock.now()
        return Response(
            {
                'session_id': session.pk,
                'status': session.status,
                'sessions_remaining_before_start': session.sessions_remaining_before_start,
                'remaining_time_minutes': session.remaining_time_minutes(now),
                'remaining_sessions': session.remaining_sessions(now),
                'session': self.get_serializer(session).data,
            },
            status=status.HTTP_201_CREATED
        )

    @swagger_auto_schema(
        operation_description="Get the user's open text sessions",
        responses={200: TextSessionSerializer(many=True)}
    )
    @action(detail=False, methods=['get'])
    def active(self, request):
        """Sessions waiting for the doctor or in progress"""
        sessions = self.get_queryset().open()
        serializer = self.get_serializer(sessions, many=True)
        return Response(serializer.data)

    @swagger_auto_schema(
        operation_description="Poll a session; expires or ends it when due and bills completed intervals",
        responses={200: SessionStatusSerializer()}
    )
    @action(detail=True, methods=['get'], url_path='check-response')
    def check_response(self, request, pk=None):
        session = self.get_object()
        session_status = self.get_controller().check_status(session)
        return Response(session_status.as_response())

    @swagger_auto_schema(
        operation_description="End a text session; billing is settled once",
        responses={200: openapi.Response("Session ended")}
    )
    @action(detail=True, methods=['post'])
    def end(self, request, pk=None):
        """End a session manually; ending an already ended session changes nothing"""
        session = self.get_object()
        result = self.get_controller().end_manually(session)

        if result is None:
            message = 'Session was already ended'
        elif result.ok:
            message = 'Session ended successfully'
        else:
            message = 'Session ended with billing errors'

        return Response({
            'message': message,
            'session': self.get_serializer(session).data,
            'settlement': result.as_dict() if result else None,
        })

    @swagger_auto_schema(
        operation_description="Chat hook called once per message sent in a session",
        request_body=MessageReceivedSerializer,
        responses={200: SessionStatusSerializer()}
    )
    @action(detail=True, methods=['post'], url_path='message-received')
    def message_received(self, request, pk=None):
        session = self.get_object()
        serializer = MessageReceivedSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        sender_role = serializer.validated_data['sender_role']

        sender = session.patient if sender_role == 'patient' else session.doctor
        if not request.user.is_staff and request.user != sender:
            return Response(
                {'error': f'Only the session {sender_role} can report this message'},
                status=status.HTTP_403_FORBIDDEN
            )

        controller = self.get_controller()
        controller.on_message(session, sender_role)
        logger.debug(f"Message from {sender_role} recorded on text session {session.pk}")
        return Response(controller.describe(session).as_response())
