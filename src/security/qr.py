"""Default QR renderer for provisioning URIs."""

import io
from base64 import b64encode

import qrcode


def generate_qr_code(uri: str) -> str:
    """Generate a QR code from a provisioning URI and return it as base64 PNG."""
    img = qrcode.make(uri)
    buf = io.BytesIO()
    img.save(buf)
    buf.seek(0)
    return b64encode(buf.getvalue()).decode("utf-8")
