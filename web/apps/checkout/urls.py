from django.urls import path
from .views import CartItemView, CartItemsView, CartView
from .views import CardCaptureView, CheckoutView, QrConfirmView
from .views import OrderDetailView, OrderHistoryView, ProductDetailView, ProductListView
app_name = "checkout"

urlpatterns = [
    path("products/", ProductListView.as_view(), name="products"),
    path("products/<int:pid>/", ProductDetailView.as_view(), name="product-detail"),
    path("cart/", CartView.as_view(), name="cart"),
    path("cart/items/", CartItemsView.as_view(), name="cart-items"),  # POST add
    path("cart/items/<int:pid>/", CartItemView.as_view(), name="cart-item"),  # PATCH / DELETE
    path("checkout/", CheckoutView.as_view(), name="checkout"),
    path("payments/qr/confirm/", QrConfirmView.as_view(), name="qr-confirm"),
    path("payments/card/capture/", CardCaptureView.as_view(), name="card-capture"),
    path("orders/", OrderHistoryView.as_view(), name="orders"),
    path("orders/<int:oid>/", OrderDetailView.as_view(), name="order-detail"),
]
