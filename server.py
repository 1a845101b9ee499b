"""
Local server for Crypto Companion.
Run: python server.py
Then open http://localhost:5000 for Dashboard, Portfolio, Position Calculator,
Daily Compounding, Converter and To Do behind one sign-in.
Accounts and data live in the hosted backend (SUPABASE_URL / SUPABASE_ANON_KEY).
"""

import logging
import os
import ssl
import subprocess
from pathlib import Path

from dotenv import load_dotenv
from flask import Flask

from backend import SupabaseClient
from price_oracle import DEFAULT_API_URL, CoinGeckoClient
from routes import bp, init_routes

BASE = Path(__file__).resolve().parent

# Load .env so keys work when running server
load_dotenv(BASE / ".env")


def load_settings() -> dict:
    """Read configuration from the environment (after .env)."""
    return {
        "SUPABASE_URL": os.environ.get("SUPABASE_URL", ""),
        "SUPABASE_ANON_KEY": os.environ.get("SUPABASE_ANON_KEY", ""),
        "COINGECKO_API_URL": os.environ.get("COINGECKO_API_URL", DEFAULT_API_URL),
        "COINGECKO_API_KEY": os.environ.get("COINGECKO_API_KEY", ""),
        "FLASK_SECRET": os.environ.get("FLASK_SECRET", "crypto-companion-default-key-change-me"),
        "HTTP_TIMEOUT": float(os.environ.get("HTTP_TIMEOUT", 15)),
        "PUBLIC_URL": os.environ.get("PUBLIC_URL", ""),
        "LOG_LEVEL": os.environ.get("LOG_LEVEL", "INFO").upper(),
        "HOST": os.environ.get("HOST", "0.0.0.0"),
        "PORT": int(os.environ.get("PORT", 5000)),
        "HTTPS": os.environ.get("COMPANION_HTTPS", "").lower() in ("1", "true", "yes"),
    }


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Request-level noise from the HTTP client
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def create_app(settings: dict = None, deps: dict = None) -> Flask:
    """
    Build the Flask app. `deps` may supply "backend" and "oracle" objects
    (tests pass fakes); otherwise real clients are built from settings.
    """
    settings = settings or load_settings()
    deps = dict(deps or {})
    timeout = settings.get("HTTP_TIMEOUT", 15)
    if "backend" not in deps:
        deps["backend"] = SupabaseClient(settings["SUPABASE_URL"], settings["SUPABASE_ANON_KEY"], timeout=timeout)
    if "oracle" not in deps:
        deps["oracle"] = CoinGeckoClient(settings.get("COINGECKO_API_URL", DEFAULT_API_URL),
                                         settings.get("COINGECKO_API_KEY", ""), timeout=timeout)

    app = Flask(__name__)
    app.secret_key = settings.get("FLASK_SECRET") or "crypto-companion-default-key-change-me"
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"

    # Initialize routes with all dependencies
    init_routes({
        "PUBLIC_URL": settings.get("PUBLIC_URL", ""),
        "backend": deps["backend"],
        "oracle": deps["oracle"],
    })
    app.register_blueprint(bp)
    return app


def ensure_self_signed_cert(base: Path):
    """Return (cert_path, key_path) for a self-signed localhost cert, creating it if needed. None if impossible."""
    cert_path = base / "cert.pem"
    key_path = base / "key.pem"
    if cert_path.exists() and key_path.exists():
        return cert_path, key_path
    try:
        print("Generating self-signed SSL certificate...")
        subprocess.run([
            "openssl", "req", "-x509", "-newkey", "rsa:2048",
            "-keyout", str(key_path), "-out", str(cert_path),
            "-days", "365", "-nodes",
            "-subj", "/CN=localhost/O=CryptoCompanion/C=US"
        ], check=True, capture_output=True)
        print(f"SSL cert generated: {cert_path}")
        return cert_path, key_path
    except (FileNotFoundError, subprocess.CalledProcessError):
        pass

    # No openssl binary: build it with the cryptography package
    import datetime as dt
    from cryptography import x509
    from cryptography.hazmat.primitives import hashes, serialization
    from cryptography.hazmat.primitives.asymmetric import rsa
    from cryptography.x509.oid import NameOID

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    subject = issuer = x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, "localhost"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Crypto Companion"),
    ])
    now = dt.datetime.now(dt.timezone.utc)
    cert = (x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(issuer)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now)
            .not_valid_after(now + dt.timedelta(days=365))
            .add_extension(x509.SubjectAlternativeName([x509.DNSName("localhost")]), critical=False)
            .sign(key, hashes.SHA256()))
    with open(key_path, "wb") as f:
        f.write(key.private_bytes(serialization.Encoding.PEM, serialization.PrivateFormat.TraditionalOpenSSL,
                                  serialization.NoEncryption()))
    with open(cert_path, "wb") as f:
        f.write(cert.public_bytes(serialization.Encoding.PEM))
    print(f"SSL cert generated via cryptography library: {cert_path}")
    return cert_path, key_path


def main():
    settings = load_settings()
    configure_logging(settings["LOG_LEVEL"])
    if not settings["SUPABASE_URL"] or not settings["SUPABASE_ANON_KEY"]:
        raise SystemExit("Set SUPABASE_URL and SUPABASE_ANON_KEY (env or .env) before starting the server.")

    app = create_app(settings)

    # ── HTTPS Support (self-signed cert) ──
    ssl_ctx = None
    if settings["HTTPS"]:
        cert_path, key_path = ensure_self_signed_cert(BASE)
        ssl_ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ssl_ctx.load_cert_chain(str(cert_path), str(key_path))

    host, port = settings["HOST"], settings["PORT"]
    protocol = "https" if ssl_ctx else "http"
    print(f"Crypto Companion: {protocol}://{host}:{port}")
    print("Dashboard | Portfolio | Position Calculator | Daily Compounding | Converter | To Do")
    if ssl_ctx:
        print("HTTPS enabled (self-signed cert). Browser may show a security warning - this is normal.")
    print("Ctrl+C to stop.")
    app.run(host=host, port=port, debug=False, ssl_context=ssl_ctx)


if __name__ == "__main__":
    main()
