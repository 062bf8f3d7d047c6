"""QR table-ordering backend: QR sessions, order lifecycle and real-time fan-out."""

__version__ = "0.1.0"
