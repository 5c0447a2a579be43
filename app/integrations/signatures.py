import hmac
import hashlib


def _parse_mp_signature(x_signature: str) -> tuple[str | None, str | None]:
    # "ts=1700000000,v1=abcdef..."
    fields = dict(
        part.strip().partition("=")[::2]
        for part in x_signature.split(",")
        if "=" in part
    )
    return fields.get("ts"), fields.get("v1")


def _hmac_sha256_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_mp_signature(*, secret: str, x_signature: str, x_request_id: str, data_id: str) -> bool:
    """
    Mercado Pago signs the manifest
    id:{data_id};request-id:{x_request_id};ts:{ts};
    with HMAC-SHA256; the hex digest travels as v1 in x-signature.
    """
    ts, v1 = _parse_mp_signature(x_signature)
    if not ts or not v1:
        return False

    manifest = f"id:{data_id};request-id:{x_request_id};ts:{ts};"
    return hmac.compare_digest(_hmac_sha256_hex(secret, manifest.encode("utf-8")), v1)


def verify_coinbase_signature(*, secret: str, signature: str, raw_body: bytes) -> bool:
    """Coinbase Commerce sends the HMAC-SHA256 hex digest of the raw body."""
    if not signature:
        return False
    return hmac.compare_digest(_hmac_sha256_hex(secret, raw_body), signature.strip().lower())
