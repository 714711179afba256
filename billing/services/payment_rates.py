# billing/services/payment_rates.py
from decimal import Decimal

from django.conf import settings


def currency_for(doctor):
    """Payout currency for a doctor, based on the country on their profile"""
    country = (doctor.country or '').strip().lower()
    return 'MWK' if country in settings.MWK_COUNTRIES else 'USD'


def text_interval_rate(currency):
    """Amount credited to a doctor for one billed text session interval"""
    rates = settings.TEXT_SESSION_PAYMENT_RATES
    return Decimal(rates.get(currency, rates['USD'])).quantize(Decimal('0.01'))


def rates_for_doctor(doctor):
    currency = currency_for(doctor)
    return {
        'text': text_interval_rate(currency),
        'currency': currency,
    }
