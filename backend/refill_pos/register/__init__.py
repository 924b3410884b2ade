"""
Register side of Refill POS: cart, pricing, sale commit and the offline queue.

Build one RegisterSession per register and pass it around; nothing in this
package keeps module-level state.
"""

from .cart import Cart, CartError, CartLine
from .catalog import CatalogSnapshot
from .committer import CommitResult, CommitState, SaleCommitter
from .connectivity import ConnectivityGate
from .history import SaleHistory
from .notifications import InlineDispatcher, Notifier, TaskDispatcher
from .queue import DrainReport, OfflineQueue
from .records import Product, QueuedOperation, Sale, SaleItem, SaleOrigin
from .remote import HttpRemoteStore, RemoteError
from .session import RegisterSession
from .storage import LocalStore

__all__ = [
    'Cart', 'CartError', 'CartLine', 'CatalogSnapshot',
    'CommitResult', 'CommitState', 'SaleCommitter', 'ConnectivityGate',
    'SaleHistory', 'InlineDispatcher', 'Notifier', 'TaskDispatcher',
    'DrainReport', 'OfflineQueue',
    'Product', 'QueuedOperation', 'Sale', 'SaleItem', 'SaleOrigin',
    'HttpRemoteStore', 'RemoteError', 'RegisterSession', 'LocalStore',
]
