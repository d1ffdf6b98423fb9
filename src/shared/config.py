"""Engine settings, read through Protean's domain configuration.

``domain.toml`` at the project root is loaded by ``protean.Domain`` exactly as
a bounded context's config would be: ``PROTEAN_ENV`` selects the overlay table
(``[test]``, ``[production]``...) that is deep-merged over the base, and
``${VAR|default}`` placeholders are filled from the process environment.
Engine-specific keys live under ``[custom]``::

    [databases.default]
    database_uri = "${DATABASE_URL|sqlite:///cartledger.db}"

    [custom]
    currency = "INR"
    gst_rate = "0.18"

    [test.databases.default]
    database_uri = "sqlite://"
"""

from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

from protean.domain import Domain

PROJECT_ROOT = Path(__file__).resolve().parents[2]

DEFAULT_DATABASE_URI = "sqlite:///cartledger.db"


@dataclass(frozen=True)
class GatewaySettings:
    provider: str = "fake"
    base_url: str = "https://api.razorpay.com/v1"
    key_id: str = ""
    key_secret: str = ""
    signing_secret: str = "dev-signing-secret"
    timeout_seconds: float = 10.0
    refund_speed: str = "normal"


@dataclass(frozen=True)
class Settings:
    env: str = "development"
    database_uri: str = DEFAULT_DATABASE_URI
    currency: str = "INR"
    gst_rate: Decimal = Decimal("0.18")
    shipping_charge: Decimal = Decimal("50")
    log_dir: str | None = None
    gateway: GatewaySettings = field(default_factory=GatewaySettings)


def settings_from_config(config) -> Settings:
    """Map a loaded Protean config onto ``Settings``."""
    custom = dict(config.get("custom") or {})
    gateway = GatewaySettings(**custom.pop("gateway", {}))

    for money_key in ("gst_rate", "shipping_charge"):
        if money_key in custom:
            # via str() so TOML floats keep their decimal digits
            custom[money_key] = Decimal(str(custom[money_key]))
    if not custom.get("log_dir"):
        custom["log_dir"] = None

    database = config.get("databases", {}).get("default", {})
    return Settings(
        env=config.get("env") or "development",
        database_uri=database.get("database_uri") or DEFAULT_DATABASE_URI,
        gateway=gateway,
        **custom,
    )


def load_settings(root_path: Path | str | None = None) -> Settings:
    """Build ``Settings`` from the ``domain.toml`` found at or above ``root_path``."""
    domain = Domain(root_path=str(root_path or PROJECT_ROOT), name="cartledger")
    return settings_from_config(domain.config)
