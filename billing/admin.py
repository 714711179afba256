# billing/admin.py
from django.contrib import admin
from .models import Subscription, DoctorWallet, WalletTransaction


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = ('patient', 'plan_name', 'text_sessions_remaining', 'is_active', 'updated_at')
    list_filter = ('is_active',)
    search_fields = ('patient__username', 'patient__email', 'plan_name')
    raw_id_fields = ('patient',)


class WalletTransactionInline(admin.TabularInline):
    model = WalletTransaction
    extra = 0
    can_delete = False
    readonly_fields = (
        'transaction_type', 'amount', 'description', 'session_type',
        'session_id', 'interval_index', 'created_at'
    )


@admin.register(DoctorWallet)
class DoctorWalletAdmin(admin.ModelAdmin):
    """Wallets are read-only here; balances only move through the ledger"""
    list_display = ('doctor', 'currency', 'balance', 'total_earned', 'total_withdrawn')
    search_fields = ('doctor__username', 'doctor__email')
    readonly_fields = ('doctor', 'currency', 'balance', 'total_earned', 'total_withdrawn')
    inlines = [WalletTransactionInline]


@admin.register(WalletTransaction)
class WalletTransactionAdmin(admin.ModelAdmin):
    list_display = ('wallet', 'transaction_type', 'amount', 'session_type', 'session_id', 'interval_index', 'created_at')
    list_filter = ('transaction_type', 'session_type')
    search_fields = ('wallet__doctor__username', 'description')
    readonly_fields = [f.name for f in WalletTransaction._meta.fields]
