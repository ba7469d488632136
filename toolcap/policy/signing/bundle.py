from __future__ import annotations

import base64
import hashlib
import json
from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

BUNDLE_VERSION = 1


class SigningError(ValueError):
    pass


def _digest(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def _read_bundle(bundle_path: str | Path) -> dict:
    try:
        bundle = json.loads(Path(bundle_path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise SigningError(f"Cannot read bundle {bundle_path}: {exc}") from exc
    if not isinstance(bundle, dict) or bundle.get("version") != BUNDLE_VERSION:
        raise SigningError(f"Unsupported bundle format in {bundle_path}")
    return bundle


def sign_ruleset(ruleset_path: str | Path, private_key_pem: str | Path) -> str:
    key = serialization.load_pem_private_key(Path(private_key_pem).read_bytes(), password=None)
    if not isinstance(key, Ed25519PrivateKey):
        raise SigningError("Private key is not ed25519")
    return base64.b64encode(key.sign(Path(ruleset_path).read_bytes())).decode("ascii")


def build_ruleset_bundle(ruleset_path: str | Path, signature_b64: str = "") -> dict:
    ruleset_file = Path(ruleset_path)
    return {
        "version": BUNDLE_VERSION,
        "ruleset_file": ruleset_file.name,
        "ruleset_sha256": _digest(ruleset_file),
        "signature": {
            "algorithm": "ed25519",
            "sig_b64": signature_b64,
        },
    }


def write_bundle(ruleset_path: str | Path, out_path: str | Path, signature_b64: str = "") -> Path:
    bundle = build_ruleset_bundle(ruleset_path, signature_b64=signature_b64)
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(bundle, indent=2), encoding="utf-8")
    return out


def verify_bundle_hash(ruleset_path: str | Path, bundle_path: str | Path) -> bool:
    bundle = _read_bundle(bundle_path)
    return _digest(Path(ruleset_path)) == bundle.get("ruleset_sha256")


def _load_ed25519_public_key(public_key_pem: str | Path) -> Ed25519PublicKey:
    key = serialization.load_pem_public_key(Path(public_key_pem).read_bytes())
    if not isinstance(key, Ed25519PublicKey):
        raise SigningError("Public key is not ed25519")
    return key


def verify_bundle_signature(ruleset_path: str | Path, bundle_path: str | Path, public_key_pem: str | Path) -> bool:
    bundle = _read_bundle(bundle_path)
    sig_b64 = bundle.get("signature", {}).get("sig_b64", "")
    if not sig_b64:
        raise SigningError("Bundle missing signature")

    key = _load_ed25519_public_key(public_key_pem)
    try:
        signature = base64.b64decode(sig_b64, validate=True)
    except ValueError as exc:
        raise SigningError("Bundle signature is not valid base64") from exc
    try:
        key.verify(signature, Path(ruleset_path).read_bytes())
    except InvalidSignature:
        return False
    return True
