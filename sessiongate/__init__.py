"""
SessionGate - Messaging Session Connection Manager

Manages the lifecycle of a single messaging-protocol session (connect,
authenticate via QR or pairing code, maintain, recover) and streams that
lifecycle to any number of web observers in real time.

Architecture:
- Each module is self-contained with clear interfaces
- Modules are completely replaceable
- No module knows the internals of another
- All communication through defined interfaces

Modules:
- session: Connection state machine, reconnect policy, protocol adapter contract
- broadcast: Realtime fan-out and late-join replay
- storage: Credential persistence (file or Redis)
- config: Environment configuration
- api: Shared request/response and event models
"""

__version__ = "1.0.0"
