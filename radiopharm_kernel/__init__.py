"""
Radiopharm Kernel

The persistence-aware core of radiopharmaceutical order management:
- Order and batch status state machines
- Multi-step, role-gated approval requests with race-safe step decisions
- Append-only approval actions and audit events
- Structured logging and typed errors
"""

__version__ = "0.1.0"
