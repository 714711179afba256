# billing/services/wallet_ledger.py
"""
Ledger operations against doctor wallets and patient subscriptions.

Every balance change goes through this module. Credits for billed session
intervals are keyed by (session reference, interval index) so that callers
racing on the same interval write at most one transaction between them.
"""
import logging
from decimal import Decimal
from typing import NamedTuple

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F

from ..exceptions import InsufficientFunds, WalletWriteFailure
from ..models import DoctorWallet, Subscription, WalletTransaction
from .payment_rates import currency_for

logger = logging.getLogger(__name__)
billing_audit = logging.getLogger('billing_audit')


class SessionRef(NamedTuple):
    """Kind and primary key of the session a wallet entry pays for"""
    kind: str
    id: int

    def __str__(self):
        return f"{self.kind}:{self.id}"


class SubscriptionDebit(NamedTuple):
    requested: int
    debited: int
    missing: int

    @property
    def insufficient(self):
        return self.missing > 0


class WalletLedger:
    """Atomic, idempotent wallet and subscription writes"""

    @staticmethod
    def get_or_create_wallet(doctor):
        wallet, created = DoctorWallet.objects.get_or_create(
            doctor=doctor,
            defaults={'currency': currency_for(doctor)}
        )
        if created:
            logger.info(f"Created {wallet.currency} wallet for doctor {doctor.id}")
        return wallet

    @staticmethod
    def has_entry(session_ref, interval_index):
        return WalletTransaction.objects.filter(
            session_type=session_ref.kind,
            session_id=session_ref.id,
            interval_index=interval_index
        ).exists()

    @staticmethod
    def credit(wallet, amount, session_ref, interval_index, description='', metadata=None):
        """
        Credit a wallet for one billed interval of a session.
        
        Args:
            wallet: The DoctorWallet to credit
            amount: Decimal amount for the interval
            session_ref: SessionRef of the billed session
            interval_index: 0-based index of the billed interval
            description: Human readable description stored on the entry
            metadata: Optional extra data stored on the entry
            
        Returns:
            bool: True if the wallet was credited, False if this interval had
            already been credited (not an error)
            
        Raises:
            WalletWriteFailure: if the write could not be persisted
        """
        amount = Decimal(amount).quantize(Decimal('0.01'))
        try:
            with transaction.atomic():
                # Serialises writers on this wallet
                DoctorWallet.objects.select_for_update().get(pk=wallet.pk)
                if WalletLedger.has_entry(session_ref, interval_index):
                    logger.info(
                        f"Interval {interval_index} of {session_ref} already credited, skipping"
                    )
                    return False

                WalletTransaction.objects.create(
                    wallet=wallet,
                    transaction_type='credit',
                    amount=amount,
                    description=description,
                    session_type=session_ref.kind,
                    session_id=session_ref.id,
                    interval_index=interval_index,
                    metadata=metadata or {}
                )
                DoctorWallet.objects.filter(pk=wallet.pk).update(
                    balance=F('balance') + amount,
                    total_earned=F('total_earned') + amount
                )
        except IntegrityError:
            # Another writer inserted the same key first
            logger.info(
                f"Interval {interval_index} of {session_ref} credited concurrently, skipping"
            )
            return False
        except DatabaseError as e:
            logger.error(
                f"Wallet credit failed for wallet {wallet.pk}, session {session_ref}, "
                f"interval {interval_index}, amount {amount}: {str(e)}"
            )
            raise WalletWriteFailure(
                str(e),
                wallet_id=wallet.pk,
                session_ref=session_ref,
                interval_index=interval_index,
                amount=amount
            ) from e

        wallet.refresh_from_db(fields=['balance', 'total_earned', 'total_withdrawn'])
        billing_audit.info(
            f"CREDIT wallet={wallet.pk} doctor={wallet.doctor_id} session={session_ref} "
            f"interval={interval_index} amount={amount} {wallet.currency} balance={wallet.balance}"
        )
        return True

    @staticmethod
    def withdraw(wallet, amount, description=''):
        """
        Record a payout to the doctor.
        
        Raises:
            InsufficientFunds: if the wallet balance is lower than the amount
        """
        amount = Decimal(amount).quantize(Decimal('0.01'))
        if amount <= 0:
            raise ValueError("Withdrawal amount must be positive")

        with transaction.atomic():
            locked = DoctorWallet.objects.select_for_update().get(pk=wallet.pk)
            if locked.balance < amount:
                raise InsufficientFunds(
                    f"Wallet {wallet.pk} balance {locked.balance} is lower than {amount}"
                )
            entry = WalletTransaction.objects.create(
                wallet=locked,
                transaction_type='debit',
                amount=amount,
                description=description or 'Withdrawal'
            )
            DoctorWallet.objects.filter(pk=wallet.pk).update(
                balance=F('balance') - amount,
                total_withdrawn=F('total_withdrawn') + amount
            )

        wallet.refresh_from_db(fields=['balance', 'total_earned', 'total_withdrawn'])
        billing_audit.info(
            f"WITHDRAW wallet={wallet.pk} doctor={wallet.doctor_id} amount={amount} "
            f"{wallet.currency} balance={wallet.balance}"
        )
        return entry

    @staticmethod
    def debit_subscription(patient, sessions, session_ref=None):
        """
        Take text session units from a patient's subscription, clamped at zero.
        
        Returns:
            SubscriptionDebit: how many units were requested, taken and missing.
            A non-zero ``missing`` is the insufficient credits condition and is
            reported to the caller rather than raised.
        """
        if sessions <= 0:
            return SubscriptionDebit(requested=0, debited=0, missing=0)

        with transaction.atomic():
            subscription = (
                Subscription.objects.select_for_update()
                .filter(patient=patient)
                .first()
            )
            if subscription is None:
                logger.warning(
                    f"Patient {patient.pk} has no subscription to debit "
                    f"{sessions} session(s) for {session_ref}"
                )
                return SubscriptionDebit(requested=sessions, debited=0, missing=sessions)

            debited = min(sessions, subscription.text_sessions_remaining)
            if debited:
                Subscription.objects.filter(pk=subscription.pk).update(
                    text_sessions_remaining=F('text_sessions_remaining') - debited
                )

        missing = sessions - debited
        billing_audit.info(
            f"DEBIT patient={patient.pk} session={session_ref} requested={sessions} "
            f"debited={debited} missing={missing}"
        )
        if missing:
            logger.warning(
                f"Insufficient credits: patient {patient.pk} was short {missing} "
                f"session(s) for {session_ref}"
            )
        return SubscriptionDebit(requested=sessions, debited=debited, missing=missing)
