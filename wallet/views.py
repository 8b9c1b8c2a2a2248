from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import WalletDeposit
from .serializers import (
    DepositCreateSerializer,
    WalletDepositSerializer,
    WalletSerializer,
    WalletTransactionSerializer,
)
from .services import get_or_create_wallet, start_deposit


class WalletView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(responses=WalletSerializer)
    def get(self, request):
        wallet = get_or_create_wallet(request.user)
        data = WalletSerializer(wallet).data
        data["recent_transactions"] = WalletTransactionSerializer(
            request.user.wallet_transactions.all()[:20], many=True
        ).data
        return Response(data)


class WalletDepositView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(responses=WalletDepositSerializer(many=True))
    def get(self, request):
        deposits = WalletDeposit.objects.filter(user=request.user)
        return Response(WalletDepositSerializer(deposits, many=True).data)

    @extend_schema(request=DepositCreateSerializer)
    def post(self, request):
        serializer = DepositCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        deposit, gateway_order = start_deposit(request.user, serializer.validated_data["amount"])
        return Response(
            {
                "deposit": WalletDepositSerializer(deposit).data,
                "gateway_order": gateway_order.as_dict(),
            },
            status=status.HTTP_201_CREATED,
        )
