from cloudsplit.handlers.basic import basic_router
from cloudsplit.handlers.bills import bills_router
from cloudsplit.handlers.summary import summary_router

__all__ = ["basic_router", "bills_router", "summary_router"]
