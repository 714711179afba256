# billing/models.py
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q


class Subscription(models.Model):
    """
    A patient's prepaid plan. Only the remaining text session units are
    relevant here; they are decremented by text session settlement and never
    incremented by this codebase.
    """
    patient = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='subscription',
        limit_choices_to={'role': 'patient'}
    )
    plan_name = models.CharField(max_length=100, blank=True, default='')
    text_sessions_remaining = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.patient.username} - {self.text_sessions_remaining} text sessions"

    def has_text_sessions(self):
        return self.is_active and self.text_sessions_remaining > 0


class DoctorWallet(models.Model):
    """
    Earnings of a doctor. The balance only moves through WalletTransaction
    entries written by billing.services.wallet_ledger.WalletLedger.
    """
    doctor = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='wallet',
        limit_choices_to={'role': 'doctor'}
    )
    currency = models.CharField(max_length=3, default='USD')
    balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_earned = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_withdrawn = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Wallet of {self.doctor.username}: {self.balance} {self.currency}"

    def is_consistent(self):
        """balance must always equal total_earned - total_withdrawn"""
        return self.balance == self.total_earned - self.total_withdrawn


class WalletTransaction(models.Model):
    TYPE_CHOICES = [
        ('credit', 'Credit'),
        ('debit', 'Debit'),
    ]

    wallet = models.ForeignKey(DoctorWallet, on_delete=models.CASCADE, related_name='transactions')
    transaction_type = models.CharField(max_length=10, choices=TYPE_CHOICES, default='credit')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    description = models.CharField(max_length=255, blank=True, default='')

    # Billing reference; (session_type, session_id, interval_index) is the idempotency key
    session_type = models.CharField(max_length=30, blank=True, null=True)
    session_id = models.PositiveBigIntegerField(blank=True, null=True)
    interval_index = models.PositiveIntegerField(blank=True, null=True)

    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']
        constraints = [
            models.UniqueConstraint(
                fields=['session_type', 'session_id', 'interval_index'],
                condition=Q(session_id__isnull=False),
                name='unique_transaction_per_session_interval',
            ),
        ]
        indexes = [
            models.Index(fields=['session_type', 'session_id'], name='wallet_tx_session_idx'),
        ]

    def __str__(self):
        return f"{self.get_transaction_type_display()} {self.amount} ({self.wallet.doctor.username})"
