from __future__ import annotations

import os
import ssl
from dataclasses import dataclass

DEBUG_CALLER_HEADER = "X-Debug-Caller-Id"


@dataclass(frozen=True)
class TlsFiles:
    cert_path: str
    key_path: str
    bundle_path: str

    @classmethod
    def from_cert_dir(cls, cert_dir: str) -> "TlsFiles":
        files = cls(
            cert_path=os.path.join(cert_dir, "cert.pem"),
            key_path=os.path.join(cert_dir, "key.pem"),
            bundle_path=os.path.join(cert_dir, "bundle.pem"),
        )
        missing = [p for p in (files.cert_path, files.key_path, files.bundle_path) if not os.path.exists(p)]
        if missing:
            raise FileNotFoundError(
                "Missing mTLS file(s): " + ", ".join(missing) + " (expected cert.pem, key.pem, bundle.pem)"
            )
        return files

    def server_context(self) -> ssl.SSLContext:
        ctx = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        ctx.load_cert_chain(self.cert_path, self.key_path)
        ctx.load_verify_locations(self.bundle_path)
        ctx.verify_mode = ssl.CERT_REQUIRED
        # Players are identified by the URI SAN of their certificate, not by hostname.
        ctx.check_hostname = False
        return ctx

    def client_context(self) -> ssl.SSLContext:
        ctx = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
        ctx.load_cert_chain(self.cert_path, self.key_path)
        ctx.load_verify_locations(self.bundle_path)
        ctx.check_hostname = False
        return ctx


def caller_id_from_peer_cert(ssl_sock: ssl.SSLSocket) -> str | None:
    """First URI SAN of the verified peer certificate, if any."""
    cert = ssl_sock.getpeercert()
    if not cert:
        return None
    for san_type, san_value in cert.get("subjectAltName", ()):
        if san_type == "URI" and isinstance(san_value, str) and san_value:
            return san_value
    return None
