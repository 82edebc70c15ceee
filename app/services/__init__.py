"""
                        Services Module

Order storage, receipt archiving, reconciliation and broadcasting.

Services:
    - store: Order documents (SQLAlchemy or in-memory)
    - receipts: Write-once receipt archive (filesystem or in-memory)
    - reconciler: Create / complete decision logic
    - hub: Real-time broadcast gateway
    - backplane: Cross-process broadcast relay (Redis pub/sub)
"""
