# text_sessions/serializers.py
from rest_framework import serializers

from users.serializers import CustomUserSerializer
from .clock import default_clock
from .models import TextSession


class TextSessionSerializer(serializers.ModelSerializer):
    patient_details = CustomUserSerializer(source='patient', read_only=True)
    doctor_details = CustomUserSerializer(source='doctor', read_only=True)
    total_allowed_minutes = serializers.SerializerMethodField()
    next_deduction_at = serializers.SerializerMethodField()
    seconds_until_next_deduction = serializers.SerializerMethodField()

    class Meta:
        model = TextSession
        fields = [
            'id', 'patient', 'doctor', 'patient_details', 'doctor_details',
            'status', 'reason', 'started_at', 'last_activity_at',
            'doctor_response_deadline', 'activated_at', 'ended_at', 'end_reason',
            'sessions_remaining_before_start', 'sessions_used',
            'auto_deductions_processed', 'sessions_debited',
            'total_allowed_minutes', 'next_deduction_at', 'seconds_until_next_deduction',
            'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def _now(self):
        return self.context.get('clock', default_clock).now()

    def get_total_allowed_minutes(self, obj):
        return obj.total_allowed_minutes()

    def get_next_deduction_at(self, obj):
        next_at = obj.next_deduction_at(self._now())
        return serializers.DateTimeField().to_representation(next_at) if next_at else None

    def get_seconds_until_next_deduction(self, obj):
        return obj.seconds_until_next_deduction(self._now())


class StartTextSessionSerializer(serializers.Serializer):
    doctor_id = serializers.IntegerField(min_value=1)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=1000)


class MessageReceivedSerializer(serializers.Serializer):
    """Payload of the chat subsystem's per-message hook"""
    sender_role = serializers.ChoiceField(choices=['patient', 'doctor'])


class SessionStatusSerializer(serializers.Serializer):
    status = serializers.CharField()
    timeRemaining = serializers.IntegerField(allow_null=True)
    remainingTimeMinutes = serializers.IntegerField()
    remainingSessions = serializers.IntegerField()
    message = serializers.CharField()
    nextDeductionAt = serializers.DateTimeField(allow_null=True)
    timeUntilNextDeduction = serializers.IntegerField(allow_null=True)
