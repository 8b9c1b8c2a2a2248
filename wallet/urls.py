from django.urls import path

from .views import WalletDepositView, WalletView

urlpatterns = [
    path("", WalletView.as_view(), name="wallet-detail"),
    path("deposits/", WalletDepositView.as_view(), name="wallet-deposits"),
]
