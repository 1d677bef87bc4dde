"""
Device Pool Package
===================

Allocation of pool phones to subscriptions.
"""

from phonepool.pool.allocator import DevicePoolAllocator, order_candidates

__all__ = ["DevicePoolAllocator", "order_candidates"]
