# billing/views.py
from rest_framework import viewsets, permissions, status
from rest_framework.decorators import action
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi

from .models import Subscription
from .permissions import IsDoctor, IsPatient
from .serializers import (
    DoctorWalletSerializer, WalletTransactionSerializer, SubscriptionSerializer
)
from .services.wallet_ledger import WalletLedger


class WalletViewSet(viewsets.ViewSet):
    """
    API endpoint for the authenticated doctor's wallet
    """
    permission_classes = [permissions.IsAuthenticated, IsDoctor]
    
    @swagger_auto_schema(
        operation_description="Get the doctor's wallet balance and payment rates",
        responses={200: DoctorWalletSerializer()}
    )
    def list(self, request):
        wallet = WalletLedger.get_or_create_wallet(request.user)
        return Response(DoctorWalletSerializer(wallet).data)
    
    @swagger_auto_schema(
        operation_description="List wallet transactions, newest first",
        manual_parameters=[
            openapi.Parameter(
                'type', openapi.IN_QUERY,
                description="Filter by transaction type (credit or debit)",
                type=openapi.TYPE_STRING
            ),
        ],
        responses={200: WalletTransactionSerializer(many=True)}
    )
    @action(detail=False, methods=['get'])
    def transactions(self, request):
        """Wallet transaction history used for audits and reconciliation"""
        wallet = WalletLedger.get_or_create_wallet(request.user)
        queryset = wallet.transactions.all()
        
        transaction_type = request.query_params.get('type')
        if transaction_type:
            if transaction_type not in ('credit', 'debit'):
                return Response(
                    {'error': 'type must be credit or debit'},
                    status=status.HTTP_400_BAD_REQUEST
                )
            queryset = queryset.filter(transaction_type=transaction_type)
        
        paginator = PageNumberPagination()
        page = paginator.paginate_queryset(queryset, request, view=self)
        serializer = WalletTransactionSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)


class SubscriptionViewSet(viewsets.ViewSet):
    """
    API endpoint for the authenticated patient's remaining session credits
    """
    permission_classes = [permissions.IsAuthenticated, IsPatient]
    
    @swagger_auto_schema(
        operation_description="Get the patient's subscription balance",
        responses={200: SubscriptionSerializer()}
    )
    def list(self, request):
        subscription = Subscription.objects.filter(patient=request.user).first()
        if subscription is None:
            return Response(
                {'error': 'No active subscription found'},
                status=status.HTTP_404_NOT_FOUND
            )
        return Response(SubscriptionSerializer(subscription).data)
