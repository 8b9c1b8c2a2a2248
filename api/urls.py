from django.urls import path, include

urlpatterns = [
    path("installments/", include("installments.urls")),
    path("wallet/", include("wallet.urls")),
]
