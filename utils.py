import json
from typing import Any, Callable

from api import SHOP_BACKENDS
from memory import HISTORY_STORES, MESSAGE_STORES
from routers import ROUTERS


def lazy_external_import(module_name: str, class_name: str) -> Callable[..., Any]:
    """Lazily import a class from an external module based on the package of the caller."""
    # Get the caller's module and package
    import inspect

    caller_frame = inspect.currentframe().f_back
    module = inspect.getmodule(caller_frame)
    package = module.__package__ if module else None

    def import_class(*args: Any, **kwargs: Any):
        import importlib

        module = importlib.import_module(module_name, package=package)
        cls = getattr(module, class_name)
        return cls(*args, **kwargs)

    return import_class


def get_history_store_class(store_name: str) -> Callable[..., Any]:
    import_path = HISTORY_STORES[store_name]
    store_class = lazy_external_import(import_path, store_name)
    return store_class


def get_shop_backend_class(backend_name: str) -> Callable[..., Any]:
    import_path = SHOP_BACKENDS[backend_name]
    backend_class = lazy_external_import(import_path, backend_name)
    return backend_class


def get_message_store_class(store_name: str) -> Callable[..., Any]:
    import_path = MESSAGE_STORES[store_name]
    store_class = lazy_external_import(import_path, store_name)
    return store_class


def get_router_class(router_name: str) -> Callable[..., Any]:
    import_path = ROUTERS[router_name]
    router_class = lazy_external_import(import_path, router_name)
    return router_class


def to_json(payload: Any) -> str:
    # db rows may carry datetimes
    return json.dumps(payload, default=str, ensure_ascii=False)
