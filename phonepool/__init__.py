"""
PhonePool
=========

Cloud phone rental service.

Customers buy a time-boxed subscription with crypto, get a cloud Android
phone bound to them, and request pickup-code screenshots of the shipping
app for their tracking numbers.

Modules:
    - api: FastAPI routes (messaging front-end, admin, payment webhook)
    - providers: Cloud phone provider adapters (GeeLark, DuoPlus, VMOS Cloud)
    - capture: Capture orchestration, navigation scripts, supervised workers
    - pool: Device pool allocation
    - billing: Crypto Pay client, currency conversion, subscription lifecycle
    - sessions: Rental session lifecycle
    - messaging: Customer notification port
    - services: Application façade tying the modules together
    - storage: Repository with guarded (compare-and-swap) updates
    - utils: Logging, security, and helper utilities
"""

__version__ = "1.0.0"
__author__ = "PhonePool Team"
