# billing/signals.py
from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

from .services.wallet_ledger import WalletLedger

@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_doctor_wallet(sender, instance, created, **kwargs):
    """
    Signal to automatically open a wallet when a doctor account is created.
    """
    if created and instance.role == 'doctor':
        WalletLedger.get_or_create_wallet(instance)
