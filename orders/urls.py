from django.urls import path
from . import views

urlpatterns = [
    path('', views.order_collection, name='order-collection'),
    path('refresh/', views.refresh_orders, name='refresh-orders'),
    path('<str:order_id>/', views.order_detail, name='order-detail'),
    path('<str:order_id>/status/', views.update_order_status, name='update-order-status'),
    path('<str:order_id>/tracking/', views.update_tracking_number, name='update-tracking-number'),
    path('<str:order_id>/cancel/', views.cancel_order, name='cancel-order'),
    path('<str:order_id>/focus/', views.focus_order, name='focus-order'),
]
