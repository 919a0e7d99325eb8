from .catalog import Product
from .stock import StockUnit
from .ledger import LogEntry
from .opname import OpnameRequest

__all__ = [
    'Product',
    'StockUnit',
    'LogEntry',
    'OpnameRequest',
]
