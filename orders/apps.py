from django.apps import AppConfig


def build_order_manager():
    from .manager import OrderLifecycleManager
    from .notifications import OrderNotifier
    from .store import FirestoreOrderStore

    return OrderLifecycleManager(FirestoreOrderStore(), notifier=OrderNotifier())


class OrdersConfig(AppConfig):
    """
    Owns the process's single OrderLifecycleManager. Views reach it through
    the app registry instead of a module global.
    """
    name = 'orders'
    verbose_name = 'Orders'
    manager = None

    def ready(self):
        if self.manager is None:
            self.manager = build_order_manager()
