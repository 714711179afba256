# billing/serializers.py
from rest_framework import serializers
from .models import DoctorWallet, WalletTransaction, Subscription


class WalletTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = WalletTransaction
        fields = [
            'id', 'transaction_type', 'amount', 'description',
            'session_type', 'session_id', 'interval_index',
            'metadata', 'created_at'
        ]
        read_only_fields = fields


class DoctorWalletSerializer(serializers.ModelSerializer):
    payment_rates = serializers.SerializerMethodField()
    
    class Meta:
        model = DoctorWallet
        fields = [
            'id', 'doctor', 'currency', 'balance', 'total_earned',
            'total_withdrawn', 'payment_rates', 'updated_at'
        ]
        read_only_fields = fields
    
    def get_payment_rates(self, obj):
        from .services.payment_rates import text_interval_rate
        return {
            'text': str(text_interval_rate(obj.currency)),
            'currency': obj.currency,
        }


class SubscriptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Subscription
        fields = ['id', 'plan_name', 'text_sessions_remaining', 'is_active', 'updated_at']
        read_only_fields = fields
